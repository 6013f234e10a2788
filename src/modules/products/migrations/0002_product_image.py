import modules.products.models
from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("products", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="product",
            name="image",
            field=models.FileField(
                blank=True,
                default="",
                upload_to=modules.products.models.product_image_path,
            ),
        ),
    ]
