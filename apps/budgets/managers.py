from django.db import models


class SoftDeleteManager(models.Manager):
    """
    Default manager for budget nodes: a row in the trash is invisible here.

    Rollups, forms and the JSON views all read through `objects`, so a
    trashed Allocation, Project or Report never feeds a parent's totals or
    a parent choice. The trash itself is reached explicitly:

        Project.objects.trashed()       # rows waiting for restore or purge
        Project.objects.with_trashed()  # the admin listing
    """

    def get_queryset(self):
        return super().get_queryset().filter(is_deleted=False)

    def trashed(self):
        return super().get_queryset().filter(is_deleted=True)

    def with_trashed(self):
        return super().get_queryset()
