"""Generic API endpoints for status codes."""

from django.utils.translation import gettext_lazy as _

from rest_framework import permissions
from rest_framework.exceptions import NotFound
from rest_framework.response import Response
from rest_framework.views import APIView

from .states import StatusCode


class StatusView(APIView):
    """Generic API endpoint for discovering information on 'status codes' for a particular model.

    This class should be implemented as a subclass for each type of status.
    For example, the API endpoint /loan/status/ will have information about
    all available 'LoanRequestStatus' codes
    """

    permission_classes = [permissions.IsAuthenticated]

    # Override status_class for implementing subclass
    status_class = None

    def get_status_model(self, *args, **kwargs):
        """Return the StatusCode class served by this view."""
        status_class = self.status_class

        if status_class is None or not issubclass(status_class, StatusCode):
            raise NotFound(_('Status class not found'))

        return status_class

    def get(self, request, *args, **kwargs):
        """Perform a GET request to learn information about status codes."""
        status_class = self.get_status_model()

        data = {'class': status_class.__name__, 'values': status_class.dict()}

        return Response(data)
