import django_filters
from django.contrib.auth import get_user_model

from modules.accounts.dtos import RoleEnum


class UserFilter(django_filters.FilterSet):
    name = django_filters.CharFilter(field_name="first_name", lookup_expr="icontains")
    email = django_filters.CharFilter(field_name="email", lookup_expr="icontains")
    role = django_filters.ChoiceFilter(
        choices=[(r.value, r.value) for r in RoleEnum], method="filter_role"
    )

    class Meta:
        model = get_user_model()
        fields = ["name", "email", "role"]

    def filter_role(self, queryset, name, value):
        return queryset.filter(is_staff=value == RoleEnum.ADMIN)
