"""
Commission ledger.

Automatic commissions are guarded by the unique_auto_commission_per_lead
constraint: at most one per (lead, advertiser), even under concurrent
callback delivery.
"""
import logging
from decimal import Decimal
from typing import Optional, Tuple

from pipeline.models import Commission

logger = logging.getLogger(__name__)


def record_conversion_commission(lead, advertiser, amount: Decimal, description: str) -> Tuple[Commission, bool]:
    """
    Create the automatic commission for a converted lead unless one exists.

    get_or_create falls back to a lookup when a concurrent insert trips the
    unique constraint, so a duplicate callback is a silent no-op.

    Returns:
        Tuple of (commission, created)
    """
    commission, created = Commission.objects.get_or_create(
        lead=lead,
        advertiser=advertiser,
        kind=Commission.Kind.AUTO,
        defaults={
            'affiliate_id': lead.affiliate_id,
            'amount': amount,
            'description': description,
        },
    )

    if created:
        logger.info(f"Commission {commission.id} created for lead {lead.id}: {amount}")
    else:
        logger.info(f"Commission already exists for lead {lead.id}, advertiser {advertiser.id}")

    return commission, created


def record_manual_commission(advertiser, affiliate, amount: Decimal, description: str,
                             lead: Optional[object] = None) -> Commission:
    """Operator-entered commission; not subject to the automatic uniqueness rule."""
    commission = Commission.objects.create(
        lead=lead,
        advertiser=advertiser,
        affiliate=affiliate,
        amount=amount,
        description=description,
        kind=Commission.Kind.MANUAL,
    )
    logger.info(f"Manual commission {commission.id} recorded: {amount}")
    return commission
