from django.contrib import admin
from .models import (
    Course, Section, Unit, Video, Document, QuizPool, Quiz, Question,
    QuestionReview, QuizConfiguration, ContentArrangement, ArrangementItem
)


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'is_launched', 'launched_at', 'created_at')
    list_filter = ('is_launched',)
    search_fields = ('title',)


@admin.register(Unit)
class UnitAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'course', 'sequence_order')
    search_fields = ('title',)


@admin.register(QuestionReview)
class QuestionReviewAdmin(admin.ModelAdmin):
    list_display = ('question', 'status', 'reviewed_by', 'reviewed_at')
    list_filter = ('status',)


class ArrangementItemInline(admin.TabularInline):
    model = ArrangementItem
    extra = 0
    fk_name = 'arrangement'


@admin.register(ContentArrangement)
class ContentArrangementAdmin(admin.ModelAdmin):
    list_display = ('id', 'course', 'status', 'version', 'approved_at')
    list_filter = ('status',)
    inlines = [ArrangementItemInline]


admin.site.register(Section)
admin.site.register(Video)
admin.site.register(Document)
admin.site.register(QuizPool)
admin.site.register(Quiz)
admin.site.register(Question)
admin.site.register(QuizConfiguration)
