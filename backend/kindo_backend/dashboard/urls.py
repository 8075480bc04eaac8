from django.urls import path

from . import views

urlpatterns = [
    path("health/", views.HealthCheckView.as_view(), name="health-check"),
    path("dashboard/stats/", views.DashboardStatsView.as_view(), name="dashboard-stats"),
    path("dashboard/recent-activity/", views.RecentActivityView.as_view(), name="dashboard-recent-activity"),
    path("dashboard/monthly-stats/", views.MonthlyStatsView.as_view(), name="dashboard-monthly-stats"),
]
