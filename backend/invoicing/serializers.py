from rest_framework import serializers

from .models import Invoice, XeroContact
from .services.invoices import DEFAULT_TAX_TYPE, LineItem


class LineItemSerializer(serializers.Serializer):
    description = serializers.CharField(allow_blank=True)
    quantity = serializers.DecimalField(max_digits=10, decimal_places=2)
    unit_amount = serializers.IntegerField()
    tax_type = serializers.CharField(default=DEFAULT_TAX_TYPE)
    booking = serializers.IntegerField(required=False, allow_null=True, default=None)

    def to_line_item(self, data) -> LineItem:
        return LineItem(
            description=data["description"],
            quantity=data["quantity"],
            unit_amount=data["unit_amount"],
            tax_type=data["tax_type"],
            booking_id=data["booking"],
        )


class InvoiceCreateSerializer(serializers.Serializer):
    contact_id = serializers.CharField(max_length=255)
    contact_name = serializers.CharField(max_length=255)
    bookings = serializers.ListField(child=serializers.IntegerField(), allow_empty=True)
    extra_line_items = LineItemSerializer(many=True, required=False, default=list)
    combine = serializers.BooleanField(default=False)
    due_date = serializers.DateField()

    def line_items(self) -> list[LineItem]:
        child = LineItemSerializer()
        return [child.to_line_item(item) for item in self.validated_data["extra_line_items"]]


class InvoiceSerializer(serializers.ModelSerializer):
    bookings = serializers.PrimaryKeyRelatedField(many=True, read_only=True)

    class Meta:
        model = Invoice
        fields = [
            "id",
            "xero_invoice_id",
            "xero_invoice_number",
            "status",
            "xero_contact_id",
            "contact_name",
            "reference",
            "line_items",
            "subtotal_cents",
            "total_tax_cents",
            "total_cents",
            "amount_due_cents",
            "amount_paid_cents",
            "currency_code",
            "invoice_date",
            "due_date",
            "xero_url",
            "bookings",
            "created_at",
        ]
        read_only_fields = fields


class XeroContactSerializer(serializers.ModelSerializer):
    class Meta:
        model = XeroContact
        fields = ["id", "xero_contact_id", "name", "email", "phone", "account_number", "is_customer", "cached_at"]
        read_only_fields = fields
