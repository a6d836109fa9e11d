# apps/accounts/api.py
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from drf_spectacular.utils import extend_schema

from .serializers import CurrentUserSerializer


@extend_schema(
    summary="Who am I",
    description=(
        "I return the authenticated user's id, username, email, display name "
        "and bound role names. Works with JWT bearer tokens or a session."
    ),
    responses={200: CurrentUserSerializer},
)
class WhoAmIView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(CurrentUserSerializer(request.user).data)
