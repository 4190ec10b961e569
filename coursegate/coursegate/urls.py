"""
URL configuration for the coursegate project.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/progression/', include('progression.urls')),
]
