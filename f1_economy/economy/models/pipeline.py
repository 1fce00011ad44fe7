"""
Pipeline and infrastructure models.

These models track lock-engine state that is not part of any team:

Models:
- AdminLockOverride: singleton switch forcing rosters locked or unlocked
- AutoLockRun: one row per auto-lock scheduler pass, for monitoring
"""

from django.db import models


class AdminLockOverride(models.Model):
    """
    Global lock override set by an administrator.

    Only one row is ever used (pk=1); load() creates it on first access.
    """
    VALUE_NONE = 'none'
    VALUE_LOCKED = 'locked'
    VALUE_UNLOCKED = 'unlocked'

    VALUE_CHOICES = [
        (VALUE_NONE, 'No override'),
        (VALUE_LOCKED, 'Force locked'),
        (VALUE_UNLOCKED, 'Force unlocked'),
    ]

    value = models.CharField(max_length=10, choices=VALUE_CHOICES, default=VALUE_NONE)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Admin Lock Override'
        verbose_name_plural = 'Admin Lock Override'

    def __str__(self):
        return f"Lock override: {self.get_value_display()}"

    @classmethod
    def load(cls):
        override, _ = cls.objects.get_or_create(pk=1)
        return override


class AutoLockRun(models.Model):
    """
    Record of a scheduler pass.

    Simple counters for queryability, JSON for the per-race breakdown.
    """
    STATUS_COMPLETE = 'complete'
    STATUS_PARTIAL = 'partial'
    STATUS_FAILED = 'failed'

    STATUS_CHOICES = [
        (STATUS_COMPLETE, 'Complete'),
        (STATUS_PARTIAL, 'Partial'),
        (STATUS_FAILED, 'Failed'),
    ]

    started_at = models.DateTimeField()
    finished_at = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES)
    races_selected = models.IntegerField(default=0)
    teams_locked = models.IntegerField(default=0)
    batches_committed = models.IntegerField(default=0)
    races_failed = models.IntegerField(default=0)
    details = models.JSONField(
        default=dict,
        blank=True,
        help_text="Per-race results and error messages"
    )

    class Meta:
        ordering = ['-started_at']
        get_latest_by = 'started_at'

    def __str__(self):
        return f"Auto-lock {self.started_at:%Y-%m-%d %H:%M} - {self.status} ({self.teams_locked} locked)"
