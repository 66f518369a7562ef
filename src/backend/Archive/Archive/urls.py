"""Top-level URL lookup for the Archive project."""

from django.contrib import admin
from django.urls import include, path

from inventory.api import inventory_api_urls
from loan.api import loan_request_api_urls

apipatterns = [
    path('inventory/', include(inventory_api_urls)),
    path('loan/', include(loan_request_api_urls)),
]

urlpatterns = [
    path('api/', include(apipatterns)),
    path('admin/', admin.site.urls),
]
