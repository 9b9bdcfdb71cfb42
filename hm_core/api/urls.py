# backend/hm_core/api/urls.py
from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from hm_core.admissions.api.views import AdmissionViewSet
from hm_core.beds.api.views import BedViewSet, RoomViewSet
from hm_core.sequences.api.views import SequenceViewSet

router = DefaultRouter()

router.register(r"admissions", AdmissionViewSet, basename="admissions")
router.register(r"beds", BedViewSet, basename="beds")
router.register(r"rooms", RoomViewSet, basename="rooms")
router.register(r"sequences", SequenceViewSet, basename="sequences")

urlpatterns = [
    # Auth (JWT)
    path("auth/token/", TokenObtainPairView.as_view(), name="token-obtain"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token-refresh"),

    # Router URLs last (so explicit paths win if ever overlapping)
    *router.urls,
]
