from django.urls import path
from .views.expand import expand_view
from .views.lookup import lookup_view
from .views.validate_code import codesystem_validate_code_view, valueset_validate_code_view

urlpatterns = [
    path('ValueSet/$expand', expand_view),
    path('ValueSet/<str:resource_id>/$expand', expand_view),
    path('ValueSet/$validate-code', valueset_validate_code_view),
    path('CodeSystem/$lookup', lookup_view),
    path('CodeSystem/$validate-code', codesystem_validate_code_view),
    path('CodeSystem/<str:resource_id>/$validate-code', codesystem_validate_code_view),
]
