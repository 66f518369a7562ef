"""Serializers used in various Archive apps."""

from copy import deepcopy

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError as DjangoValidationError

from rest_framework import serializers
from rest_framework.serializers import ValidationError


class UserSerializer(serializers.ModelSerializer):
    """Serializer for a User."""

    class Meta:
        """Metaclass defines serializer fields."""

        model = User
        fields = ['pk', 'username', 'first_name', 'last_name', 'email']
        read_only_fields = fields


class ArchiveModelSerializer(serializers.ModelSerializer):
    """Inherits the standard Django ModelSerializer class, but also ensures that the underlying model class data are checked on validation."""

    def skip_clean_fields(self) -> list:
        """Return a list of model fields which are not checked by full_clean()."""
        return []

    def validate(self, data):
        """Perform serializer validation.

        In addition to running validators on the serializer fields,
        this class ensures that the underlying model is also validated.
        """
        # Run any native validation checks first (may raise a ValidationError)
        data = super().validate(data)

        # Now ensure the underlying model is correct
        if self.instance is None:
            instance = self.Meta.model(**data)
        else:
            # Update an existing instance, without touching the database
            instance = deepcopy(self.instance)

            for key, value in data.items():
                setattr(instance, key, value)

        try:
            instance.full_clean(exclude=self.skip_clean_fields(), validate_unique=False)
        except (ValidationError, DjangoValidationError) as exc:
            if hasattr(exc, 'message_dict'):
                data = exc.message_dict
            elif hasattr(exc, 'messages'):
                data = {'non_field_errors': exc.messages}
            else:
                data = {'non_field_errors': [str(exc)]}

            # Change '__all__' key (django style) to 'non_field_errors' (DRF style)
            if '__all__' in data:
                data['non_field_errors'] = data.pop('__all__')

            raise ValidationError(data)

        return data
