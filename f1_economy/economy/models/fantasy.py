"""
Fantasy economy models.

Assets carry prices and points history; fantasy teams hold assets under
contracts and carry their own budget accounting and lock state.

Models:
- Asset: tradeable driver or constructor
- AssetRaceScore: fantasy points per asset per completed race (price history input)
- League: group of teams sharing a lock deadline policy
- FantasyTeam: a user's team, budget ledger and lock flags
- AssetHolding: one asset on one team, with contract and accrued points
"""

from django.core.validators import MinValueValidator
from django.db import models

from .events import Race


class Asset(models.Model):
    """
    A driver or constructor that can be bought and sold.

    ``code`` is the stable identifier used by the engine (e.g. 'VER', 'MCL').
    """
    KIND_DRIVER = 'driver'
    KIND_CONSTRUCTOR = 'constructor'

    KIND_CHOICES = [
        (KIND_DRIVER, 'Driver'),
        (KIND_CONSTRUCTOR, 'Constructor'),
    ]

    code = models.CharField(max_length=20, unique=True)
    name = models.CharField(max_length=200)
    kind = models.CharField(max_length=20, choices=KIND_CHOICES)
    current_price = models.IntegerField(
        validators=[MinValueValidator(0)],
        help_text="Current price in dollars"
    )
    previous_price = models.IntegerField(
        default=0,
        help_text="Price before the most recent repricing"
    )
    season_points = models.FloatField(default=0)
    prior_season_points = models.FloatField(
        default=0,
        help_text="Last season's total, used for the initial price"
    )
    tier = models.CharField(max_length=1, default='C')
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['kind', '-current_price', 'code']
        indexes = [
            models.Index(fields=['kind', 'season_points']),
            models.Index(fields=['-current_price']),
        ]

    def __str__(self):
        return f"{self.name} ({self.code}) @ ${self.current_price}"


class AssetRaceScore(models.Model):
    """
    Fantasy points an asset scored at one race weekend.

    Sprint weekend points are weighted down in the rolling average, so the
    weekend flag is stored alongside the points.
    """
    asset = models.ForeignKey(Asset, on_delete=models.CASCADE, related_name='race_scores')
    race = models.ForeignKey(Race, on_delete=models.CASCADE, related_name='asset_scores')
    points = models.FloatField(help_text="Grand Prix points plus sprint points")
    is_sprint_weekend = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['asset', '-race__round_number']
        unique_together = [['asset', 'race']]

    def __str__(self):
        return f"{self.asset.code} - {self.race.name}: {self.points}"


class League(models.Model):
    LOCK_AT_QUALIFYING = 'qualifying'
    LOCK_AT_RACE = 'race'

    LOCK_DEADLINE_CHOICES = [
        (LOCK_AT_QUALIFYING, 'At qualifying'),
        (LOCK_AT_RACE, 'At race start'),
    ]

    name = models.CharField(max_length=100)
    lock_deadline = models.CharField(
        max_length=20,
        choices=LOCK_DEADLINE_CHOICES,
        default=LOCK_AT_QUALIFYING,
        help_text="When rosters in this league freeze on race weekend"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class FantasyTeam(models.Model):
    """
    A user's fantasy team.

    Ownership is an opaque owner_id from the auth collaborator; one team
    per owner per league.
    """
    id = models.CharField(primary_key=True, max_length=32)
    owner_id = models.CharField(max_length=128, db_index=True)
    league = models.ForeignKey(
        League,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='teams'
    )
    name = models.CharField(max_length=100)

    # Accounting
    budget = models.IntegerField()
    total_spent = models.IntegerField(default=0)
    realized_adjustment = models.IntegerField(
        default=0,
        help_text="Sale gains/losses, commissions and fees (budget = start - spent + this)"
    )
    total_points = models.FloatField(default=0)
    banked_points = models.FloatField(
        default=0,
        help_text="Points kept from assets that have left the team"
    )
    star_asset = models.ForeignKey(
        Asset,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )

    # Lock state
    is_locked = models.BooleanField(default=False)
    can_modify = models.BooleanField(default=True)
    lock_reason = models.CharField(max_length=200, null=True, blank=True)
    next_unlock_time = models.DateTimeField(null=True, blank=True)
    is_season_locked = models.BooleanField(default=False)
    season_lock_races_remaining = models.IntegerField(default=0)

    # Settlement
    settled_race = models.ForeignKey(
        Race,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        help_text="Last race whose completion was applied to this team"
    )
    asset_lockouts = models.JSONField(
        default=dict,
        blank=True,
        help_text="Asset code -> completed race count from which it can be bought again"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']
        unique_together = [['owner_id', 'league']]
        indexes = [
            models.Index(fields=['is_locked']),
        ]

    def __str__(self):
        return f"{self.name} ({self.owner_id})"


class AssetHolding(models.Model):
    team = models.ForeignKey(FantasyTeam, on_delete=models.CASCADE, related_name='holdings')
    asset = models.ForeignKey(Asset, on_delete=models.PROTECT, related_name='holdings')
    purchase_price = models.IntegerField()
    current_price = models.IntegerField()
    points_scored = models.FloatField(default=0)
    races_held = models.IntegerField(default=0)
    contract_length = models.IntegerField(validators=[MinValueValidator(1)])
    acquired_round = models.IntegerField(
        default=0,
        help_text="Number of completed races when the asset was bought"
    )

    class Meta:
        ordering = ['team', 'id']
        unique_together = [['team', 'asset']]

    def __str__(self):
        return f"{self.team.name}: {self.asset.code}"
