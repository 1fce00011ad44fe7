from django.contrib import admin

from .models import (
    AdminLockOverride, Asset, AssetHolding, AssetRaceScore, AutoLockRun,
    FantasyTeam, League, Race, Season, Session,
)


@admin.register(Season)
class SeasonAdmin(admin.ModelAdmin):
    list_display = ['year', 'name', 'is_active']
    list_filter = ['is_active']
    search_fields = ['year', 'name']


class SessionInline(admin.TabularInline):
    model = Session
    extra = 0
    fields = ['session_number', 'session_type', 'session_date_utc']


@admin.register(Race)
class RaceAdmin(admin.ModelAdmin):
    list_display = ['name', 'season', 'round_number', 'event_format', 'status']
    list_filter = ['season', 'status', 'event_format']
    search_fields = ['name', 'location', 'country']
    inlines = [SessionInline]
    actions = ['mark_upcoming', 'mark_cancelled']

    @admin.action(description='Reset status to upcoming')
    def mark_upcoming(self, request, queryset):
        updated = queryset.update(status=Race.STATUS_UPCOMING)
        self.message_user(request, f"{updated} race(s) reset to upcoming")

    @admin.action(description='Mark as cancelled')
    def mark_cancelled(self, request, queryset):
        updated = queryset.update(status=Race.STATUS_CANCELLED)
        self.message_user(request, f"{updated} race(s) cancelled")


@admin.register(Asset)
class AssetAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'kind', 'current_price', 'previous_price', 'tier', 'season_points']
    list_filter = ['kind', 'tier']
    search_fields = ['code', 'name']


@admin.register(AssetRaceScore)
class AssetRaceScoreAdmin(admin.ModelAdmin):
    list_display = ['asset', 'race', 'points', 'is_sprint_weekend']
    list_filter = ['race', 'is_sprint_weekend']
    search_fields = ['asset__code', 'asset__name']


@admin.register(League)
class LeagueAdmin(admin.ModelAdmin):
    list_display = ['name', 'lock_deadline', 'created_at']
    list_filter = ['lock_deadline']
    search_fields = ['name']


class AssetHoldingInline(admin.TabularInline):
    model = AssetHolding
    extra = 0
    readonly_fields = ['purchase_price', 'current_price', 'points_scored', 'races_held']


@admin.register(FantasyTeam)
class FantasyTeamAdmin(admin.ModelAdmin):
    list_display = [
        'name', 'owner_id', 'league', 'budget', 'total_points',
        'is_locked', 'is_season_locked',
    ]
    list_filter = ['is_locked', 'is_season_locked', 'league']
    search_fields = ['name', 'owner_id']
    inlines = [AssetHoldingInline]
    readonly_fields = ['id', 'total_spent', 'realized_adjustment', 'settled_race', 'created_at', 'updated_at']

    fieldsets = (
        ('Basic Info', {
            'fields': ('id', 'name', 'owner_id', 'league', 'star_asset')
        }),
        ('Ledger', {
            'fields': ('budget', 'total_spent', 'realized_adjustment', 'total_points', 'banked_points')
        }),
        ('Lock State', {
            'fields': (
                'is_locked', 'can_modify', 'lock_reason', 'next_unlock_time',
                'is_season_locked', 'season_lock_races_remaining',
            )
        }),
        ('Settlement', {
            'fields': ('settled_race', 'asset_lockouts')
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(AdminLockOverride)
class AdminLockOverrideAdmin(admin.ModelAdmin):
    list_display = ['value', 'updated_at']


@admin.register(AutoLockRun)
class AutoLockRunAdmin(admin.ModelAdmin):
    list_display = ['started_at', 'status', 'races_selected', 'teams_locked', 'batches_committed', 'races_failed']
    list_filter = ['status']
    date_hierarchy = 'started_at'
    readonly_fields = ['details']
