"""
Season, race and session models.

These models hold the race calendar the lock engine runs against.
Populated by the import_schedule management command (FastF1) and read by
DjangoStore when resolving lockouts and selecting races to auto-lock.

Structure:
- Season: one championship year
- Race: a Grand Prix weekend with its lifecycle status
- Session: individual sessions within the weekend (FP1..Race)
"""

from django.db import models


class Season(models.Model):
    """
    Represents an F1 season
    """
    year = models.IntegerField(unique=True)
    name = models.CharField(max_length=100, help_text="e.g., '2025 Formula 1 Season'")
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['-year']
        indexes = [
            models.Index(fields=['is_active']),
        ]

    def __str__(self):
        return f"{self.year} Season"


class Race(models.Model):
    """
    A Grand Prix weekend.

    ``status`` moves upcoming -> in_progress (auto-lock scheduler, once
    teams are locked for qualifying) -> completed (race completion
    processing). Cancelled races are never selected.
    """

    # Event format choices (matching FastF1 EventFormat)
    FORMAT_CONVENTIONAL = 'conventional'
    FORMAT_SPRINT = 'sprint'
    FORMAT_SPRINT_SHOOTOUT = 'sprint_shootout'
    FORMAT_SPRINT_QUALIFYING = 'sprint_qualifying'
    FORMAT_TESTING = 'testing'

    EVENT_FORMAT_CHOICES = [
        (FORMAT_CONVENTIONAL, 'Conventional Weekend'),
        (FORMAT_SPRINT, 'Sprint Weekend'),
        (FORMAT_SPRINT_SHOOTOUT, 'Sprint Weekend (Shootout)'),
        (FORMAT_SPRINT_QUALIFYING, 'Sprint Weekend (Sprint Qualifying)'),
        (FORMAT_TESTING, 'Testing'),
    ]

    SPRINT_FORMATS = (FORMAT_SPRINT, FORMAT_SPRINT_SHOOTOUT, FORMAT_SPRINT_QUALIFYING)

    STATUS_UPCOMING = 'upcoming'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_UPCOMING, 'Upcoming'),
        (STATUS_IN_PROGRESS, 'In Progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    season = models.ForeignKey(Season, on_delete=models.CASCADE, related_name='races')
    name = models.CharField(max_length=100, help_text="e.g., 'Australian Grand Prix'")
    round_number = models.IntegerField(
        help_text="Race number in season (1 for first race, 2 for second, etc.)"
    )
    country = models.CharField(max_length=100, blank=True)
    location = models.CharField(
        max_length=100,
        blank=True,
        help_text="City/location name (e.g., 'Melbourne', 'Silverstone')"
    )
    event_format = models.CharField(
        max_length=20,
        choices=EVENT_FORMAT_CHOICES,
        default=FORMAT_CONVENTIONAL,
        help_text="Weekend format (conventional, sprint, testing)"
    )
    event_date = models.DateField(
        null=True,
        blank=True,
        help_text="Official event date from FastF1 (usually race day)"
    )
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_UPCOMING,
        help_text="Lifecycle state used by the lock scheduler"
    )

    class Meta:
        ordering = ['season', 'round_number']
        unique_together = [['season', 'round_number']]
        indexes = [
            models.Index(fields=['season', 'round_number']),
            models.Index(fields=['status']),
        ]

    def __str__(self):
        return f"{self.season.year} {self.name} (Round {self.round_number})"

    @property
    def has_sprint(self):
        return self.event_format in self.SPRINT_FORMATS

    def session_time(self, session_type):
        """UTC start of the given session type, or None if not scheduled"""
        for session in self.sessions.all():
            if session.session_type == session_type:
                return session.session_date_utc
        return None


class Session(models.Model):
    """
    Individual session within a race weekend.

    Each Race has 3-5 sessions depending on the weekend format. Only
    session_date_utc matters to the lock engine.
    """

    # Session type choices (matching FastF1 naming)
    TYPE_PRACTICE_1 = 'Practice 1'
    TYPE_PRACTICE_2 = 'Practice 2'
    TYPE_PRACTICE_3 = 'Practice 3'
    TYPE_QUALIFYING = 'Qualifying'
    TYPE_SPRINT_QUALIFYING = 'Sprint Qualifying'
    TYPE_SPRINT_SHOOTOUT = 'Sprint Shootout'
    TYPE_SPRINT = 'Sprint'
    TYPE_RACE = 'Race'

    SESSION_TYPE_CHOICES = [
        (TYPE_PRACTICE_1, 'Free Practice 1'),
        (TYPE_PRACTICE_2, 'Free Practice 2'),
        (TYPE_PRACTICE_3, 'Free Practice 3'),
        (TYPE_QUALIFYING, 'Qualifying'),
        (TYPE_SPRINT_QUALIFYING, 'Sprint Qualifying'),
        (TYPE_SPRINT_SHOOTOUT, 'Sprint Shootout'),
        (TYPE_SPRINT, 'Sprint Race'),
        (TYPE_RACE, 'Race'),
    ]

    race = models.ForeignKey(
        Race,
        on_delete=models.CASCADE,
        related_name='sessions',
        help_text="The race weekend this session belongs to"
    )
    session_type = models.CharField(
        max_length=30,
        choices=SESSION_TYPE_CHOICES,
        help_text="Type of session (Practice 1, Qualifying, Race, etc.)"
    )
    session_number = models.IntegerField(
        help_text="Session number in weekend (1-5, matching FastF1 Session1-Session5)"
    )
    session_date_utc = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Session date/time in UTC"
    )

    class Meta:
        ordering = ['race', 'session_number']
        unique_together = [['race', 'session_number']]
        indexes = [
            models.Index(fields=['session_type', 'session_date_utc']),
        ]

    def __str__(self):
        return f"{self.race.name} - {self.session_type}"
