from django.db import models


class NewsletterSubscription(models.Model):
    email = models.EmailField(unique=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "newsletter_subscriptions"


class ContactSubmission(models.Model):
    class Subject(models.TextChoices):
        TECHNICAL = "TECHNICAL"
        BILLING = "BILLING"
        PRESALES = "PRESALES"
        PARTNERSHIP = "PARTNERSHIP"
        FEEDBACK = "FEEDBACK"
        OTHER = "OTHER"

    first_name = models.CharField(max_length=50)
    last_name = models.CharField(max_length=50)
    email = models.EmailField()
    company = models.CharField(max_length=100, blank=True, default="")
    subject = models.CharField(max_length=16, choices=Subject.choices)
    message = models.TextField(max_length=2000)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "contact_submissions"
        ordering = ["-created_at"]
