from django.urls import path
from . import views

urlpatterns = [
    path('battles/', views.user_battles, name='user_battles'),
    path('battles/create/', views.create_battle, name='create_battle'),
    path('battles/join/<str:join_token>/', views.join_battle, name='join_battle'),
    path('battles/<int:battle_id>/', views.battle_detail, name='battle_detail'),
    path('battles/<int:battle_id>/participants/', views.battle_participants, name='battle_participants'),
    path('battles/<int:battle_id>/problems/', views.battle_problems, name='battle_problems'),
    path('battles/<int:battle_id>/standings/', views.battle_standings, name='battle_standings'),
    path('battles/<int:battle_id>/submissions/', views.battle_submissions, name='battle_submissions'),
    path('battles/<int:battle_id>/refresh/', views.refresh_submissions, name='refresh_submissions'),
    path('battles/<int:battle_id>/start/', views.start_battle, name='start_battle'),
    path('battles/<int:battle_id>/end/', views.end_battle, name='end_battle'),
    path('battles/<int:battle_id>/cancel/', views.cancel_battle, name='cancel_battle'),
]
