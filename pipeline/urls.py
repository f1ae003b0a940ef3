"""
URL configuration for pipeline app.
"""
from django.urls import path, re_path
from pipeline.views import AdvertiserCallbackView, LeadRetryView, metrics_view

urlpatterns = [
    re_path(r'^advertiser_callback/?$', AdvertiserCallbackView.as_view(), name='advertiser-callback'),
    path('leads/<int:lead_id>/retry/', LeadRetryView.as_view(), name='lead-retry'),
    path('metrics', metrics_view, name='metrics'),
]
