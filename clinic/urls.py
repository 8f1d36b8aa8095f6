from django.urls import include, path

urlpatterns = [
    path('api/arpa/', include('arpa.urls')),
]
