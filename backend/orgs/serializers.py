from rest_framework import serializers

from .models import Organization, StripeAccount


class OrganizationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Organization
        fields = [
            "id",
            "name",
            "slug",
            "contact_email",
            "phone",
            "default_currency",
            "stripe_onboarding_complete",
        ]
        read_only_fields = ["id", "slug", "stripe_onboarding_complete"]


class StripeOnboardingLinkSerializer(serializers.Serializer):
    url = serializers.URLField()
    expires_at = serializers.DateTimeField(allow_null=True)


class StripeAccountStatusSerializer(serializers.Serializer):
    connected = serializers.BooleanField()
    account_id = serializers.CharField(allow_null=True, required=False)
    account_status = serializers.CharField(required=False)
    charges_enabled = serializers.BooleanField(required=False)
    payouts_enabled = serializers.BooleanField(required=False)
    details_submitted = serializers.BooleanField(required=False)
    currently_due = serializers.ListField(child=serializers.CharField(), required=False)
    onboarding_link_url = serializers.CharField(allow_blank=True, required=False)
    last_webhook_received_at = serializers.DateTimeField(required=False, allow_null=True)
    last_webhook_error_message = serializers.CharField(allow_blank=True, required=False)

    @staticmethod
    def from_account(account: StripeAccount | None) -> dict:
        if account is None:
            return {"connected": False}

        return {
            "connected": True,
            "account_id": account.account_id,
            "account_status": account.account_status,
            "charges_enabled": account.charges_enabled,
            "payouts_enabled": account.payouts_enabled,
            "details_submitted": account.details_submitted,
            "currently_due": list(account.currently_due or []),
            "onboarding_link_url": account.onboarding_link_url or "",
            "last_webhook_received_at": account.last_webhook_received_at,
            "last_webhook_error_message": account.last_webhook_error_message or "",
        }
