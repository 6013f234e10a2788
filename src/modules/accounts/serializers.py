"""Account DRF serializers for API output.

Input payloads are validated by the Pydantic DTOs in ``dtos.py``.
"""

from __future__ import annotations

from django.contrib.auth import get_user_model
from rest_framework import serializers

from modules.accounts.dtos import RoleEnum


class UserSerializer(serializers.ModelSerializer):
    name = serializers.CharField(source="first_name", read_only=True)
    role = serializers.SerializerMethodField()

    class Meta:
        model = get_user_model()
        fields = ["id", "name", "email", "role", "date_joined"]
        read_only_fields = fields

    def get_role(self, obj) -> str:
        return RoleEnum.ADMIN.value if obj.is_staff else RoleEnum.CUSTOMER.value
