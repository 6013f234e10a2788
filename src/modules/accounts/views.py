"""Account API views.

Registration, profile and password change for the signed-in user, plus
administrator user management. Token issuance itself is SimpleJWT's
``TokenObtainPairView`` (``username`` is the account email).
"""

from __future__ import annotations

from django.db.models import ProtectedError
from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.mixins import ListModelMixin
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework.viewsets import GenericViewSet
from rest_framework_simplejwt.tokens import RefreshToken

from modules.accounts.dtos import ChangePasswordDTO, RegisterUserDTO, UpdateUserDTO
from modules.accounts.exceptions import (
    InvalidCurrentPassword,
    LastAdministrator,
    UserAlreadyExists,
    UserNotFound,
)
from modules.accounts.filters import UserFilter
from modules.accounts.repositories.django_repository import UserDjangoRepository
from modules.accounts.serializers import UserSerializer
from modules.accounts.services import AccountService
from modules.core.permissions import IsStoreAdmin

_NOT_FOUND = {"detail": "User not found."}


def _bad_request(exc: Exception) -> Response:
    return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)


def _token_pair(user) -> dict:
    refresh = RefreshToken.for_user(user)
    return {"access": str(refresh.access_token), "refresh": str(refresh)}


def _register_dto(data, role=None) -> RegisterUserDTO:
    fields = {
        "name": data.get("name", ""),
        "email": data.get("email", ""),
        "password": data.get("password", ""),
    }
    if role is not None:
        fields["role"] = role
    return RegisterUserDTO(**fields)


class RegisterView(APIView):
    """POST /api/v1/auth/register/: always creates a customer."""

    permission_classes = [AllowAny]
    serializer_class = UserSerializer

    def post(self, request: Request) -> Response:
        try:
            dto = _register_dto(request.data)
        except (PydanticValidationError, ValueError) as exc:
            return _bad_request(exc)

        service = AccountService(repository=UserDjangoRepository())
        try:
            user = service.register(dto)
        except UserAlreadyExists as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)

        return Response(
            {"user": UserSerializer(user).data, **_token_pair(user)},
            status=status.HTTP_201_CREATED,
        )


class MeView(APIView):
    """GET /api/v1/auth/me/"""

    permission_classes = [IsAuthenticated]
    serializer_class = UserSerializer

    def get(self, request: Request) -> Response:
        return Response(UserSerializer(request.user).data)


class ChangePasswordView(APIView):
    """POST /api/v1/auth/change-password/"""

    permission_classes = [IsAuthenticated]

    def post(self, request: Request) -> Response:
        try:
            dto = ChangePasswordDTO(
                current_password=request.data.get("current_password", ""),
                new_password=request.data.get("new_password", ""),
            )
        except (PydanticValidationError, ValueError) as exc:
            return _bad_request(exc)

        service = AccountService(repository=UserDjangoRepository())
        try:
            service.change_password(request.user, dto)
        except InvalidCurrentPassword as exc:
            return _bad_request(exc)
        return Response({"detail": "Password updated."})


class UserViewSet(ListModelMixin, GenericViewSet):
    """Administrator user management."""

    permission_classes = [IsStoreAdmin]
    serializer_class = UserSerializer
    filterset_class = UserFilter
    search_fields = ["first_name", "email"]
    ordering_fields = ["date_joined", "email", "first_name"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = AccountService(repository=UserDjangoRepository())

    def get_queryset(self):
        return self._service.list_users()

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/users/{pk}/"""
        try:
            user = self._service.get_user(pk)
        except UserNotFound:
            return Response(_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        return Response(UserSerializer(user).data)

    def create(self, request: Request) -> Response:
        """POST /api/v1/users/: may create administrators."""
        try:
            dto = _register_dto(request.data, role=request.data.get("role"))
        except (PydanticValidationError, ValueError) as exc:
            return _bad_request(exc)

        try:
            user = self._service.register(dto)
        except UserAlreadyExists as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/users/{pk}/"""
        allowed = set(UpdateUserDTO.model_fields)
        try:
            dto = UpdateUserDTO(
                **{k: v for k, v in request.data.items() if k in allowed}
            )
        except (PydanticValidationError, ValueError) as exc:
            return _bad_request(exc)

        try:
            user = self._service.update_user(pk, dto)
        except UserNotFound:
            return Response(_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        except UserAlreadyExists as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        except LastAdministrator as exc:
            return _bad_request(exc)
        return Response(UserSerializer(user).data)

    def destroy(self, request: Request, pk: str | None = None) -> Response:
        """DELETE /api/v1/users/{pk}/"""
        try:
            self._service.delete_user(pk)
        except UserNotFound:
            return Response(_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        except LastAdministrator as exc:
            return _bad_request(exc)
        except ProtectedError:
            return Response(
                {"detail": "User has orders and cannot be deleted."},
                status=status.HTTP_409_CONFLICT,
            )
        return Response(status=status.HTTP_204_NO_CONTENT)
