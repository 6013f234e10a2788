"""Catalog DRF serializers for API output.

Write payloads are validated by the Pydantic DTOs in ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.products.models import Category, Product


class CategorySerializer(serializers.ModelSerializer):
    # Uniqueness is checked case-insensitively by the service.
    name = serializers.CharField(max_length=50)

    class Meta:
        model = Category
        fields = ["id", "name"]
        read_only_fields = ["id"]


class ProductSerializer(serializers.ModelSerializer):
    """Read serializer for the Product resource."""

    category_name = serializers.CharField(
        source="category.name", read_only=True, default=None
    )
    image = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            "id",
            "name",
            "description",
            "category_id",
            "category_name",
            "price",
            "stock_quantity",
            "is_active",
            "is_available",
            "image",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_image(self, obj: Product) -> str | None:
        return obj.image.url if obj.image else None
