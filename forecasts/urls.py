from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

router = DefaultRouter()
router.register(r'locations', views.LocationViewSet, basename='location')

urlpatterns = [
    path('api/', include(router.urls)),
    path('api/currentweather/', views.CurrentWeatherView.as_view(), name='current-weather'),
    path('api/hourlyforecast/', views.HourlyForecastView.as_view(), name='hourly-forecast'),
    path('api/dailyforecast/', views.DailyForecastView.as_view(), name='daily-forecast'),
    path('api/health/', views.HealthCheckView.as_view(), name='health-check'),
    path('api/config/', views.ConfigView.as_view(), name='config'),
]
