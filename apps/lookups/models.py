from django.db import models


class LookupCode(models.Model):
    """
    Shared code table entry referenced by string code from budget records.

    usage_count is a cache of how many live (non-trashed) records reference
    this code. It is only ever changed through apps.lookups.services.
    """
    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    usage_count = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    LOOKUP_KIND = None

    class Meta:
        abstract = True
        ordering = ['code']

    def __str__(self):
        return f"{self.code} - {self.name}"

    @property
    def is_in_use(self):
        return self.usage_count > 0


class Particular(LookupCode):
    """Budget particular code (e.g. "GAD", "20% DF")"""
    LOOKUP_KIND = 'particular'

    class Meta(LookupCode.Meta):
        verbose_name = "Particular"
        verbose_name_plural = "Particulars"


class ImplementingOffice(LookupCode):
    """Office responsible for implementing a project (e.g. "PEO", "TPH")"""
    LOOKUP_KIND = 'implementing_office'
    full_name = models.CharField(max_length=255, blank=True)

    class Meta(LookupCode.Meta):
        verbose_name = "Implementing Office"
        verbose_name_plural = "Implementing Offices"


class Category(LookupCode):
    """Project category used to group projects and fund records"""
    LOOKUP_KIND = 'category'

    class Meta(LookupCode.Meta):
        verbose_name = "Category"
        verbose_name_plural = "Categories"


LOOKUP_MODELS = {
    Particular.LOOKUP_KIND: Particular,
    ImplementingOffice.LOOKUP_KIND: ImplementingOffice,
    Category.LOOKUP_KIND: Category,
}
