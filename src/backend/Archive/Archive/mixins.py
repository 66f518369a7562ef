"""Mixins for (API) views in the whole project."""

from rest_framework import generics, status
from rest_framework.response import Response


class CleanMixin:
    """Model mixin class which cleans inputs.

    Leading and trailing whitespace is stripped from every string value.
    """

    def clean_data(self, data) -> dict:
        """Clean / sanitize incoming data."""
        if hasattr(data, 'dict'):
            data = data.dict()
        elif not isinstance(data, dict):
            return data

        clean = {}

        for key, value in data.items():
            if isinstance(value, str):
                value = value.strip()
            clean[key] = value

        return clean

    def create(self, request, *args, **kwargs):
        """Override to clean data before processing it."""
        serializer = self.get_serializer(data=self.clean_data(request.data))
        serializer.is_valid(raise_exception=True)
        self.perform_create(serializer)
        headers = self.get_success_headers(serializer.data)
        return Response(
            serializer.data, status=status.HTTP_201_CREATED, headers=headers
        )

    def update(self, request, *args, **kwargs):
        """Override to clean data before processing it."""
        partial = kwargs.pop('partial', False)
        instance = self.get_object()
        serializer = self.get_serializer(
            instance, data=self.clean_data(request.data), partial=partial
        )
        serializer.is_valid(raise_exception=True)
        self.perform_update(serializer)

        return Response(serializer.data)


class SerializerContextMixin:
    """Mixin which passes the request to the serializer context."""

    def get_serializer_context(self):
        """Add the request object to the serializer context."""
        context = super().get_serializer_context()
        context['request'] = self.request
        return context


class ListAPI(generics.ListAPIView):
    """View for list API."""


class CreateAPI(CleanMixin, generics.CreateAPIView):
    """View for create API."""


class ListCreateAPI(CleanMixin, generics.ListCreateAPIView):
    """View for list and create API."""


class RetrieveUpdateAPI(CleanMixin, generics.RetrieveUpdateAPIView):
    """View for retrieve and update API."""


class RetrieveUpdateDestroyAPI(CleanMixin, generics.RetrieveUpdateDestroyAPIView):
    """View for retrieve, update and destroy API."""

