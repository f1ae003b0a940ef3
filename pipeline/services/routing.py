"""
Mapping resolver: routes an (affiliate, offer) pair to an advertiser.
"""
import logging
from typing import Optional

from pipeline.models import Mapping

logger = logging.getLogger(__name__)


def resolve_mapping(affiliate_id, offer_id) -> Optional[Mapping]:
    """
    Find the enabled mapping for an (affiliate, offer) pair.

    A miss is a legitimate outcome, not an error. When several enabled
    mappings match, the first by id wins and the duplicate is logged as a
    configuration problem.

    Returns:
        The Mapping (with its advertiser loaded) or None
    """
    if affiliate_id is None or offer_id is None:
        return None

    candidates = list(
        Mapping.objects
        .select_related('advertiser')
        .filter(affiliate_id=affiliate_id, offer_id=offer_id, enabled=True)
        .order_by('id')[:2]
    )

    if not candidates:
        return None

    if len(candidates) > 1:
        logger.warning(
            f"Multiple enabled mappings for affiliate={affiliate_id} offer={offer_id}, "
            f"using mapping {candidates[0].id}"
        )

    return candidates[0]


def endpoint_for(mapping: Mapping) -> str:
    """The mapping's forward URL override, else the advertiser default."""
    if mapping.forward_url and mapping.forward_url.strip():
        return mapping.forward_url.strip()
    return mapping.advertiser.endpoint_url
