from django.contrib import admin
from django.urls import include, path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenRefreshView

from accounts.api import (
    LoginView,
    MembershipListView,
    MeView,
    RegisterView,
    SelectOrganizationView,
)
from bookings.api import BookingViewSet, DriverViewSet
from invoicing.api import (
    ContactListView,
    ContactSyncView,
    InvoiceableBookingListView,
    InvoiceListCreateView,
    InvoiceSyncView,
    XeroCallbackView,
    XeroConnectView,
    XeroDisconnectView,
    XeroStatusView,
)
from messaging.api import (
    ConversationListView,
    CustomerMessageView,
    DriverMessageView,
    MessageListView,
    WhatsAppConfigView,
    WhatsAppIncomingWebhookView,
    WhatsAppStatusWebhookView,
    WhatsAppTestView,
)
from orgs.api import (
    OrganizationCreateView,
    OrganizationDetailView,
    StripeAccountStatusView,
    StripeOnboardingLinkView,
)
from payments.api import (
    PaymentLinkDeactivateView,
    PaymentLinkListCreateView,
    PaymentListView,
    RefundCreateView,
    StripeWebhookView,
    WidgetCheckoutView,
)

router = DefaultRouter()
router.register(r"bookings", BookingViewSet, basename="booking")
router.register(r"drivers", DriverViewSet, basename="driver")

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/auth/register/", RegisterView.as_view(), name="auth-register"),
    path("api/auth/login/", LoginView.as_view(), name="auth-login"),
    path("api/auth/refresh/", TokenRefreshView.as_view(), name="auth-refresh"),
    path("api/auth/me/", MeView.as_view(), name="auth-me"),
    path("api/auth/memberships/", MembershipListView.as_view(), name="auth-memberships"),
    path(
        "api/auth/select-organization/",
        SelectOrganizationView.as_view(),
        name="auth-select-organization",
    ),
    path("api/", include(router.urls)),
    path("api/orgs/", OrganizationCreateView.as_view(), name="organization-create"),
    path("api/orgs/current/", OrganizationDetailView.as_view(), name="organization-detail"),
    path(
        "api/orgs/current/stripe/link/",
        StripeOnboardingLinkView.as_view(),
        name="organization-stripe-link",
    ),
    path(
        "api/orgs/current/stripe/status/",
        StripeAccountStatusView.as_view(),
        name="organization-stripe-status",
    ),
    path("api/whatsapp/config/", WhatsAppConfigView.as_view(), name="whatsapp-config"),
    path("api/whatsapp/test/", WhatsAppTestView.as_view(), name="whatsapp-test"),
    path("api/messages/", MessageListView.as_view(), name="message-list"),
    path("api/messages/driver/", DriverMessageView.as_view(), name="driver-message"),
    path("api/messages/customer/", CustomerMessageView.as_view(), name="customer-message"),
    path("api/conversations/", ConversationListView.as_view(), name="conversation-list"),
    path("api/payments/", PaymentListView.as_view(), name="payment-list"),
    path("api/payment-links/", PaymentLinkListCreateView.as_view(), name="payment-link-list"),
    path(
        "api/payment-links/<int:link_id>/deactivate/",
        PaymentLinkDeactivateView.as_view(),
        name="payment-link-deactivate",
    ),
    path("api/refunds/", RefundCreateView.as_view(), name="refund-create"),
    path(
        "api/public/<slug:slug>/checkout/",
        WidgetCheckoutView.as_view(),
        name="widget-checkout",
    ),
    path("api/xero/connect/", XeroConnectView.as_view(), name="xero-connect"),
    path("api/xero/callback/", XeroCallbackView.as_view(), name="xero-callback"),
    path("api/xero/status/", XeroStatusView.as_view(), name="xero-status"),
    path("api/xero/disconnect/", XeroDisconnectView.as_view(), name="xero-disconnect"),
    path("api/xero/contacts/", ContactListView.as_view(), name="xero-contacts"),
    path("api/xero/contacts/sync/", ContactSyncView.as_view(), name="xero-contacts-sync"),
    path(
        "api/invoices/invoiceable-bookings/",
        InvoiceableBookingListView.as_view(),
        name="invoiceable-bookings",
    ),
    path("api/invoices/", InvoiceListCreateView.as_view(), name="invoice-list"),
    path("api/invoices/<int:invoice_id>/sync/", InvoiceSyncView.as_view(), name="invoice-sync"),
    path("api/webhooks/stripe/", StripeWebhookView.as_view(), name="stripe-webhook"),
    path(
        "api/webhooks/whatsapp/incoming/",
        WhatsAppIncomingWebhookView.as_view(),
        name="whatsapp-incoming-webhook",
    ),
    path(
        "api/webhooks/whatsapp/status/",
        WhatsAppStatusWebhookView.as_view(),
        name="whatsapp-status-webhook",
    ),
]
