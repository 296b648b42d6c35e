from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # Core Apps
    path('api/v1/orders/', include('apps.orders.urls')),
    path('api/v1/utils/', include('apps.utils.urls')),
]
