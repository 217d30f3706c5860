"""Tests for route classification and the permission matrix."""

import pytest

from school_gateway.auth.context import RoleType
from school_gateway.auth.permissions import (
    ROLE_ROUTE_PERMISSIONS,
    PermissionMatrix,
    RouteClass,
    RouteClassifier,
    matches_prefix,
    permission_matrix,
    route_classifier,
)
from school_gateway.errors import PermissionMatrixError


class TestMatchesPrefix:
    def test_exact_match(self) -> None:
        assert matches_prefix("/dashboard", "/dashboard") is True

    def test_sub_path(self) -> None:
        assert matches_prefix("/dashboard/x", "/dashboard") is True

    def test_sibling_with_shared_prefix(self) -> None:
        assert matches_prefix("/dashboardx", "/dashboard") is False

    def test_parent_path(self) -> None:
        assert matches_prefix("/api", "/api/v1") is False


class TestRouteClassifier:
    @pytest.mark.parametrize(
        "path",
        ["/login", "/auth/callback", "/static/app.css", "/favicon.ico", "/health"],
    )
    def test_public(self, path: str) -> None:
        assert route_classifier.classify(path) is RouteClass.PUBLIC

    @pytest.mark.parametrize(
        "path",
        ["/", "/dashboard", "/api/v1/dashboard/summary", "/loginx", "/authz"],
    )
    def test_protected(self, path: str) -> None:
        assert route_classifier.classify(path) is RouteClass.PROTECTED

    def test_longest_public_prefix_reported(self) -> None:
        classifier = RouteClassifier(["/auth", "/auth/callback"])
        assert classifier.matching_public_route("/auth/callback/x") == "/auth/callback"
        assert classifier.matching_public_route("/auth/other") == "/auth"
        assert classifier.matching_public_route("/dashboard") is None


class TestPermissionMatrix:
    def test_dashboard_permits_sub_path_only(self) -> None:
        assert permission_matrix.permitted("DIRETORIA", "/dashboard") is True
        assert permission_matrix.permitted("DIRETORIA", "/dashboard/x") is True
        assert permission_matrix.permitted("DIRETORIA", "/dashboardx") is False

    @pytest.mark.parametrize(
        "role", [RoleType.DIRETORIA, RoleType.SEC_EDUC_MUN, RoleType.SEC_EDUC_EST]
    )
    def test_education_roles(self, role: RoleType) -> None:
        assert permission_matrix.permitted(role, "/api/v1/dashboard/events") is True
        assert permission_matrix.permitted(role, "/api/dashboard/presence") is True
        assert permission_matrix.permitted(role, "/api/v1/dashboard/alerts") is False
        assert permission_matrix.permitted(role, "/api/dashboard/security") is False

    def test_public_security_role(self) -> None:
        role = RoleType.SEC_SEG_PUB
        assert permission_matrix.permitted(role, "/api/v1/dashboard/alerts") is True
        assert permission_matrix.permitted(role, "/api/dashboard/security") is True
        assert permission_matrix.permitted(role, "/api/v1/dashboard/events") is False
        assert permission_matrix.permitted(role, "/api/dashboard/presence") is False

    @pytest.mark.parametrize("role", list(RoleType))
    def test_every_role_sees_summary_and_schemas(self, role: RoleType) -> None:
        assert permission_matrix.permitted(role, "/api/v1/dashboard/summary") is True
        assert permission_matrix.permitted(role, "/api/v1/dashboard/schemas") is True

    def test_unknown_role_denied(self) -> None:
        assert permission_matrix.prefixes_for("ADMIN") == ()
        assert permission_matrix.permitted("ADMIN", "/dashboard") is False

    def test_rules_immutable(self) -> None:
        with pytest.raises(TypeError):
            permission_matrix.rules["ADMIN"] = ("/",)  # type: ignore[index]

    def test_missing_role_fails_fast(self) -> None:
        rules = dict(ROLE_ROUTE_PERMISSIONS)
        del rules[RoleType.SEC_SEG_PUB]
        with pytest.raises(PermissionMatrixError, match="SEC_SEG_PUB"):
            PermissionMatrix(rules)

    def test_empty_prefix_set_fails_fast(self) -> None:
        rules = {**ROLE_ROUTE_PERMISSIONS, RoleType.DIRETORIA: ()}
        with pytest.raises(PermissionMatrixError, match="DIRETORIA"):
            PermissionMatrix(rules)

    @pytest.mark.parametrize("prefix", ["dashboard", "/dashboard/"])
    def test_malformed_prefix_rejected(self, prefix: str) -> None:
        with pytest.raises(PermissionMatrixError):
            PermissionMatrix({"DIRETORIA": (prefix,)}, roles=["DIRETORIA"])

    def test_duplicate_prefixes_collapsed_in_order(self) -> None:
        matrix = PermissionMatrix(
            {"DIRETORIA": ("/b", "/a", "/b")}, roles=["DIRETORIA"]
        )
        assert matrix.prefixes_for("DIRETORIA") == ("/b", "/a")
