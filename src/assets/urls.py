"""URL configuration for assets app."""

from django.urls import path

from . import views

app_name = "assets"

urlpatterns = [
    # Transfers
    path("transfers/", views.transfer_list, name="transfer_list"),
    path("transfers/kpis/", views.transfer_kpis, name="transfer_kpis"),
    path(
        "transfers/<int:pk>/",
        views.transfer_detail,
        name="transfer_detail",
    ),
    path(
        "transfers/<int:pk>/approve/",
        views.transfer_approve,
        name="transfer_approve",
    ),
    path(
        "transfers/<int:pk>/reject/",
        views.transfer_reject,
        name="transfer_reject",
    ),
    path(
        "transfers/<int:pk>/effectuate/",
        views.transfer_effectuate,
        name="transfer_effectuate",
    ),
    # Transfer request wizard
    path("transfers/new/", views.wizard_state, name="wizard_state"),
    path(
        "transfers/new/asset/",
        views.wizard_select_asset,
        name="wizard_select_asset",
    ),
    path(
        "transfers/new/destination/",
        views.wizard_submit_destination,
        name="wizard_submit_destination",
    ),
    path("transfers/new/back/", views.wizard_back, name="wizard_back"),
    path(
        "transfers/new/confirm/",
        views.wizard_confirm,
        name="wizard_confirm",
    ),
    path(
        "transfers/new/cancel/",
        views.wizard_cancel,
        name="wizard_cancel",
    ),
]
