from django.contrib import admin, messages

from .models import Battle, BattleProblem, BattleSubmission, Participant, Profile, ScheduledJob
from .services.scheduler import get_scheduler

admin.site.site_header = "Codeforces Battles"
admin.site.site_title = "Battles Admin"
admin.site.index_title = "Battle administration"


class SuperuserOnlyAdmin(admin.ModelAdmin):
    """
    Hides technical models from regular staff.
    """

    def has_module_permission(self, request):
        return bool(request.user and request.user.is_superuser)

    def has_view_permission(self, request, obj=None):
        return bool(request.user and request.user.is_superuser)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return bool(request.user and request.user.is_superuser)


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ('user', 'handle_codeforces', 'created_at')
    search_fields = ('user__username', 'handle_codeforces')


class ParticipantInline(admin.TabularInline):
    model = Participant
    extra = 0
    readonly_fields = ('user', 'joined_at')


class BattleProblemInline(admin.TabularInline):
    model = BattleProblem
    extra = 0
    readonly_fields = ('position', 'contest_id', 'index', 'name', 'rating')
    can_delete = False


@admin.register(Battle)
class BattleAdmin(admin.ModelAdmin):
    list_display = ('title', 'created_by', 'status', 'start_time', 'duration_min', 'min_rating', 'max_rating', 'num_problems')
    list_filter = ('status',)
    search_fields = ('title', 'created_by__username', 'join_token')
    ordering = ('-start_time',)
    # Status only moves through the lifecycle services.
    readonly_fields = ('status', 'join_token', 'start_error', 'created_at', 'updated_at')
    inlines = [ParticipantInline, BattleProblemInline]
    actions = ['cancel_scheduled_jobs']

    @admin.action(description="Cancel scheduled jobs")
    def cancel_scheduled_jobs(self, request, queryset):
        scheduler = get_scheduler()
        total = sum(scheduler.cancel_all(battle.id) for battle in queryset)
        self.message_user(request, f"{total} job(s) cancelled.", level=messages.SUCCESS)


@admin.register(BattleSubmission)
class BattleSubmissionAdmin(admin.ModelAdmin):
    list_display = ('battle', 'user', 'contest_id', 'index', 'verdict', 'passed_tests', 'submitted_at')
    list_filter = ('verdict',)
    search_fields = ('user__username', 'external_id', 'contest_id')
    ordering = ('-submitted_at',)


@admin.register(ScheduledJob)
class ScheduledJobAdmin(SuperuserOnlyAdmin):
    list_display = ('battle', 'kind', 'task_id', 'run_at', 'interval_seconds', 'created_at')
    list_filter = ('kind',)
    search_fields = ('task_id',)
    ordering = ('-created_at',)
