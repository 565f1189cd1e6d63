import pytest
from zyra_auth.navigation import (
    MemoryNavigator,
    is_password_reset_path,
    should_redirect_on_sign_out,
)

RESET = ("/reset-password", "/forgot-password")
AUTH = ("/auth",)


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("/reset-password", True),
        ("/reset-password?token=abc", True),
        ("/forgot-password/sent", True),
        ("/dashboard", False),
        ("/", False),
    ],
)
def test_password_reset_paths(path, expected):
    assert is_password_reset_path(path, RESET) is expected


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("/dashboard", True),
        ("/products/42?tab=seo", True),
        ("/", False),
        ("/?ref=ad", False),
        ("/auth", False),
        ("/auth/callback", False),
        ("/reset-password?token=abc", False),
    ],
)
def test_sign_out_redirect_rules(path, expected):
    assert (
        should_redirect_on_sign_out(path, auth_prefixes=AUTH, password_reset_prefixes=RESET)
        is expected
    )


def test_memory_navigator_tracks_local_and_external_redirects():
    navigator = MemoryNavigator("https://app.zyra.test/", "/dashboard")

    navigator.redirect("/auth")
    assert navigator.current_path == "/auth"

    navigator.redirect("https://idp.test/authorize?provider=google")
    assert navigator.current_path == "/auth"

    navigator.redirect("https://app.zyra.test/reset-password?token=abc")
    assert navigator.current_path == "/reset-password?token=abc"
    assert navigator.origin == "https://app.zyra.test"
    assert len(navigator.history) == 3
