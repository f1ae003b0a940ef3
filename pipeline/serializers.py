"""
Request serializers for the advertiser callback endpoint.
"""
from decimal import Decimal

from rest_framework import serializers


class CallbackSerializer(serializers.Serializer):
    """
    Advertiser callback body. Unknown keys are allowed and kept in the
    callback log; status is the advertiser's own vocabulary.
    """

    az_tx_id = serializers.CharField(max_length=64)
    status = serializers.CharField(max_length=100)
    external_id = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    # Any number is accepted; reconciliation rounds it to cents
    payout = serializers.DecimalField(
        max_digits=None,
        decimal_places=None,
        max_value=Decimal('9999999999'),
        required=False,
        allow_null=True,
        coerce_to_string=False,
    )
