from django.urls import include, path

urlpatterns = [
    path('', include('terminology.urls')),
]
