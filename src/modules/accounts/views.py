from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.accounts.serializers import ProfileSerializer


class MeView(APIView):
    """Return the caller's storefront profile.

    * No token  -> 401
    * No profile -> 404
    """

    permission_classes = [IsAuthenticated]

    def get(self, request: Request) -> Response:
        profile = getattr(request.user, "profile", None)
        if profile is None:
            return Response(
                {"error": "Profile not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(ProfileSerializer(profile).data)
