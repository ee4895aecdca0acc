from django.urls import path, include
from django.http import JsonResponse
from rest_framework.routers import DefaultRouter
from .views import ProductViewSet, StockViewSet, StockMoveViewSet

def health(_request, org_slug=None):
    return JsonResponse({"app": "inventory", "status": "ok"})

router = DefaultRouter()
router.register(r'products', ProductViewSet, basename='inv-product')
router.register(r'stock', StockViewSet, basename='inv-stock')
router.register(r'moves', StockMoveViewSet, basename='inv-moves')

urlpatterns = [
    path("health/", health, name="inventory-health"),
    path('', include(router.urls)),
]
