import uuid

import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Artifact",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("locator", models.CharField(help_text="Blob store locator of the merged file", max_length=500)),
                ("size", models.BigIntegerField(help_text="Size of the merged file in bytes")),
                ("category", models.CharField(help_text="Media category (image, video)", max_length=20)),
                (
                    "owner_id",
                    models.CharField(
                        db_index=True,
                        help_text="Opaque identifier of the uploading principal",
                        max_length=255,
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Caller payload forwarded from the upload session",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="DedupEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "content_digest",
                    models.CharField(
                        help_text="Verified content digest (lowercase hex)",
                        max_length=128,
                        unique=True,
                    ),
                ),
                (
                    "artifact_locator",
                    models.CharField(help_text="Blob store locator of the stored artifact", max_length=500),
                ),
                (
                    "artifact_id",
                    models.CharField(help_text="Catalog record id of the stored artifact", max_length=255),
                ),
            ],
            options={
                "verbose_name": "dedup entry",
                "verbose_name_plural": "dedup entries",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="UploadSession",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "owner_id",
                    models.CharField(
                        help_text="Opaque identifier of the principal that owns the upload",
                        max_length=255,
                    ),
                ),
                (
                    "filename",
                    models.CharField(help_text="Original filename of the file being uploaded", max_length=255),
                ),
                ("declared_size", models.BigIntegerField(help_text="Declared total file size in bytes")),
                (
                    "content_category",
                    models.CharField(
                        choices=[("image", "Image"), ("video", "Video")],
                        help_text="Media category (image, video)",
                        max_length=20,
                    ),
                ),
                (
                    "content_digest",
                    models.CharField(help_text="Declared content digest, verified after merge", max_length=128),
                ),
                (
                    "chunk_size",
                    models.PositiveIntegerField(default=5242880, help_text="Size of each chunk in bytes"),
                ),
                (
                    "total_chunks",
                    models.PositiveIntegerField(help_text="Number of chunks the file is split into"),
                ),
                (
                    "received_chunks",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Sorted list of chunk indices persisted so far",
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("uploading", "Uploading"),
                            ("merging", "Merging"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("expired", "Expired"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the upload session (managed by FSM)",
                        max_length=50,
                    ),
                ),
                (
                    "final_locator",
                    models.CharField(
                        blank=True,
                        help_text="Blob store locator of the merged artifact",
                        max_length=500,
                        null=True,
                    ),
                ),
                (
                    "linked_artifact_id",
                    models.CharField(
                        blank=True,
                        help_text="Catalog record created from this upload",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "error_detail",
                    models.TextField(
                        blank=True,
                        help_text="Failure reason when the session is FAILED",
                        null=True,
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Opaque caller payload passed through to the catalog",
                    ),
                ),
                ("expires_at", models.DateTimeField(help_text="When this session expires")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["owner_id", "content_digest", "status"],
                        name="idx_upload_owner_digest",
                    ),
                    models.Index(
                        fields=["status", "expires_at"],
                        name="idx_upload_status_expires",
                    ),
                ],
            },
        ),
    ]
