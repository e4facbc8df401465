import uuid
from django.conf import settings
from django.db import models


class Bundle(models.Model):
    """A downloadable digital product sold on the storefront."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=220, unique=True)
    short_description = models.CharField(max_length=300, blank=True, default="")
    description = models.TextField(blank=True, default="")
    price = models.DecimalField(max_digits=10, decimal_places=2)
    is_active = models.BooleanField(default=True)
    # object key or URL of the downloadable archive
    download_url = models.CharField(max_length=500, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "bundles"
        ordering = ["-created_at"]

    def __str__(self):
        return self.name


class Review(models.Model):
    """A customer's rating of a bundle; one per user and bundle."""

    user = models.ForeignKey(settings.AUTH_USER_MODEL, related_name="reviews", on_delete=models.CASCADE)
    bundle = models.ForeignKey(Bundle, related_name="reviews", on_delete=models.CASCADE)
    rating = models.PositiveSmallIntegerField()
    title = models.CharField(max_length=100, blank=True, default="")
    content = models.TextField(max_length=1000)
    is_public = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "reviews"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["user", "bundle"], name="uniq_review_per_user_bundle"),
        ]
