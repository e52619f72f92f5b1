from rest_framework.routers import DefaultRouter

from apps.debtors.views import DebtorViewSet

router = DefaultRouter()
router.register("debtors", DebtorViewSet, basename="debtor")

urlpatterns = router.urls
