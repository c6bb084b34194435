from django.contrib import admin
from django.urls import path, include
from guesthouse.views import health_check, welcome

urlpatterns = [
    path('admin/', admin.site.urls),
    path('health', health_check, name='health'),
    path('', welcome, name='welcome'),
    path('api/', include('guesthouse.urls')),
    path('api-auth/', include('rest_framework.urls')),  # browsable API login/logout
]
