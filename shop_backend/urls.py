from django.conf import settings
from django.conf.urls.static import static
from django.urls import include, path
from django.views.decorators.csrf import csrf_exempt
from graphene_django.views import GraphQLView

urlpatterns = [
    path("api/", include("shop.urls")),
    path("graphql", csrf_exempt(GraphQLView.as_view(graphiql=settings.DEBUG))),
] + static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)

handler404 = "shop.views.not_found"
