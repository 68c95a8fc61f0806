"""Login, users, project settings and theme."""
from __future__ import annotations

from dataclasses import fields

from testmo.commands import fail, open_workspace
from testmo.errors import ValidationError
from testmo.types import ProjectSettings, User

ROLES = ("Admin", "Tester", "Viewer")


def cmd_login(cwd: str, username: str, password: str):
    with open_workspace(cwd) as ws:
        user = ws.login(username, password)
        if user is None:
            fail("Invalid username or password")
        print(f"✓ Logged in as {user.name} ({user.role})")


def cmd_logout(cwd: str):
    with open_workspace(cwd) as ws:
        ws.logout()
    print("✓ Logged out")


def cmd_whoami(cwd: str):
    with open_workspace(cwd) as ws:
        user = ws.context.user
        theme = ws.context.theme
    if user is None:
        print(f"Not logged in (theme: {theme})")
    else:
        print(f"{user.name} <{user.username}> {user.role} (theme: {theme})")


def cmd_users(cwd: str, args: list[str]):
    with open_workspace(cwd) as ws:
        try:
            if args and args[0] == "add":
                if len(args) < 3:
                    fail("Usage: testmo users add <username> <name> [role]")
                role = args[3] if len(args) > 3 else "Tester"
                if role not in ROLES:
                    fail(f"Unknown role {role!r}. Use one of: {', '.join(ROLES)}")
                initials = "".join(part[0] for part in args[2].split()[:2]).upper()
                user = ws.save_user(User(username=args[1], name=args[2], role=role, initials=initials))
                print(f"✓ Saved user {user.username}")
            elif args and args[0] == "rm":
                if len(args) < 2:
                    fail("Usage: testmo users rm <username>")
                ws.delete_user(args[1])
                print(f"✓ Deleted user {args[1]}")
            else:
                for u in ws.users():
                    print(f"{u.username:<16} {u.role:<7} {u.name}")
        except ValidationError as e:
            fail(str(e))


def cmd_settings(cwd: str, assignments: list[str]):
    """Show project settings, or update them with key=value pairs."""
    keys = [f.name for f in fields(ProjectSettings)]
    with open_workspace(cwd) as ws:
        settings = ws.settings or ProjectSettings()
        if not assignments:
            for key in keys:
                print(f"{key}: {getattr(settings, key)}")
            return
        for item in assignments:
            key, sep, value = item.partition("=")
            if not sep or key not in keys:
                fail(f"Expected key=value with key in: {', '.join(keys)}")
            setattr(settings, key, value)
        if not ws.save_settings(settings):
            fail("Settings could not be saved")
        print("✓ Settings saved")


def cmd_theme(cwd: str):
    with open_workspace(cwd) as ws:
        theme = ws.toggle_theme()
    print(f"✓ Theme: {theme}")
