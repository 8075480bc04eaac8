from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static
from django.http import JsonResponse

urlpatterns = [

    path('admin/', admin.site.urls),
    path("api/v1/", include("accounts.urls")),
    path("api/v1/", include("blog.urls")),
    path("api/v1/", include("dashboard.urls")),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)


def api_not_found(request, exception=None):
    return JsonResponse({"success": False, "message": "API endpoint not found."}, status=404)


handler404 = api_not_found
