from rest_framework.routers import DefaultRouter

from apps.debts.views import DebtViewSet, PaymentViewSet

router = DefaultRouter()
router.register("debts", DebtViewSet, basename="debt")
router.register("payments", PaymentViewSet, basename="payment")

urlpatterns = router.urls
