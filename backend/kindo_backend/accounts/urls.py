from django.urls import path
from . import views


urlpatterns = [
    # Authentication
    path("auth/register/", views.RegisterView.as_view(), name="auth-register"),
    path("auth/login/", views.LoginView.as_view(), name="auth-login"),
    path("auth/logout/", views.LogoutView.as_view(), name="auth-logout"),
    path("auth/forgot-password/", views.ForgotPasswordView.as_view(), name="auth-forgot-password"),
    path("auth/reset-password/", views.ResetPasswordView.as_view(), name="auth-reset-password"),
    path("auth/user/", views.CurrentUserView.as_view(), name="auth-user"),
    path("auth/user/profile/", views.ProfileUpdateView.as_view(), name="auth-profile"),
    path("auth/user/change-password/", views.ChangePasswordView.as_view(), name="auth-change-password"),

    # User management (admin only)
    path("users/", views.UserListView.as_view(), name="users"),
    path("users/stats/", views.UserStatsView.as_view(), name="user-stats"),
    path("users/<int:pk>/", views.UserDetailView.as_view(), name="user-detail"),
    path("users/<int:pk>/activate/", views.UserActivateView.as_view(), name="user-activate"),
    path("users/<int:pk>/deactivate/", views.UserDeactivateView.as_view(), name="user-deactivate"),
    path("users/<int:pk>/status/", views.UserStatusView.as_view(), name="user-status"),
]
