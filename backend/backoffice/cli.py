# Overview: Flask CLI command groups for bootstrap, approval policy upkeep and translation checks.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "backoffice:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--branch-code MAIN] [--branch-name "Main Branch"]
#   Idempotent: default branch, admin role, admin user, default approval policies.
#
# Users:
# - python -m flask users create --username clerk --email clerk@erp.local --password "Password123" --role clerk
#   Create a user (prompts if options are omitted).
#
# Approvals:
# - python -m flask approvals list [--status PENDING]
#   List approval requests by status.
# - python -m flask approvals policy-set master_data.products.skus create --required
#   Turn approval on (or --not-required off) for one screen action.
#
# Translation:
# - python -m flask translate text "Black Leather" [--mode transliterate]
#   Run the Azure -> DeepL chain once and print the result.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, User
from .services import approval_service, translation_service
from .services.auth_service import PasswordValidationError, create_user, get_or_create_role
from .services.basic_info_resources import RESOURCES
from .services.sku_service import SCOPE_KEY as SKU_SCOPE_KEY
from .services.translation_service import TranslationError
from .services.uom_conversion_service import SCOPE_KEY as UOM_CONVERSION_SCOPE_KEY


POLICY_ACTIONS = ("create", "edit", "delete")


def default_policy_scopes() -> list[str]:
    """Every screen that routes its writes through the approval helper."""
    return [r.scope_key for r in RESOURCES.values()] + [UOM_CONVERSION_SCOPE_KEY, SKU_SCOPE_KEY]


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--branch-code', default='MAIN', help='Default branch code')
@click.option('--branch-name', default='Main Branch', help='Default branch name')
@click.option('--admin-username', default='admin', help='Admin username')
@click.option('--admin-email', default='admin@erp.local', help='Admin email')
@with_appcontext
def init_system(branch_code, branch_name, admin_username, admin_email):
    """
    Initialize the back-office: default branch, admin role and user, and one
    approval policy row per screen action (all off).

    Default admin password: "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing back-office...")

    branch = db.session.query(Branch).filter_by(code=branch_code).first()
    if not branch:
        branch = Branch(code=branch_code, name=branch_name, is_active=True)
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created default branch: {branch.name} (ID: {branch.id}, Code: {branch.code})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    get_or_create_role("admin", "Full access; decides approval requests")
    db.session.commit()
    click.echo("PASS Admin role ready")

    if db.session.query(User).filter_by(username=admin_username).first():
        click.echo(f"SKIP User {admin_username} already exists")
    else:
        user = create_user(admin_username, "Password123!", "admin", email=admin_email, branch_id=branch.id)
        click.echo(f"PASS Created admin user: {user.username} (ID: {user.id})")

    existing = {(p.entity_key, p.action) for p in approval_service.list_policies()}
    added = 0
    for scope_key in default_policy_scopes():
        for action in POLICY_ACTIONS:
            if (scope_key, action) in existing:
                continue
            approval_service.set_policy(scope_key, action, requires_approval=False)
            added += 1
    click.echo(f"PASS Approval policies: {added} added, {len(existing)} kept")

    click.echo("\nDONE Back-office initialized")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', prompt=True, help='Role template name (created when missing)')
@click.option('--branch-id', type=int, help='Default branch (uses the first branch if not specified)')
@with_appcontext
def create_user_cli(username, email, password, role, branch_id):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    """
    if branch_id is None:
        branch = db.session.query(Branch).order_by(Branch.id).first()
        if not branch:
            click.echo("FAIL No branch found. Run 'python -m flask system init' first.")
            return
        branch_id = branch.id

    try:
        user = create_user(username, password, role, email=email, branch_id=branch_id)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        return
    except ValueError as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created user {user.username} (ID: {user.id}, role: {role}, branch: {branch_id})")


@click.group('approvals')
def approvals_group():
    """Approval queue and policy commands."""


@approvals_group.command('list')
@click.option('--status', default=approval_service.PENDING,
              type=click.Choice(['PENDING', 'APPROVED', 'REJECTED'], case_sensitive=False))
@click.option('--limit', default=50, type=int)
@with_appcontext
def list_approvals(status, limit):
    """List approval requests, newest first."""
    rows = approval_service.list_requests(status.upper(), limit=limit)
    if not rows:
        click.echo(f"No {status.upper()} requests")
        return
    for row in rows:
        click.echo(
            f"#{row.id:<6} {row.status:<9} {row.entity_type:<18} {row.entity_id:<10} "
            f"branch={row.branch_id} by={row.requested_by} {row.summary or ''}"
        )


@approvals_group.command('policy-set')
@click.argument('scope_key')
@click.argument('action', type=click.Choice(POLICY_ACTIONS))
@click.option('--required/--not-required', default=True, help='Whether the action needs approval')
@with_appcontext
def policy_set(scope_key, action, required):
    """Upsert the SCREEN policy for SCOPE_KEY + ACTION."""
    policy = approval_service.set_policy(scope_key, action, required)
    state = "requires approval" if policy.requires_approval else "applies directly"
    click.echo(f"PASS {policy.entity_type}:{policy.entity_key}:{policy.action} {state}")


@click.group('translate')
def translate_group():
    """Translation provider checks."""


@translate_group.command('text')
@click.argument('text')
@click.option('--mode', type=click.Choice(translation_service.MODES), default='translate')
@with_appcontext
def translate_text(text, mode):
    """Translate TEXT to Urdu through the configured providers."""
    try:
        result = translation_service.resolve(text, mode)
    except TranslationError as e:
        click.echo(f"FAIL {e}")
        if e.azure_error:
            click.echo(f"  azure: {e.azure_error}")
        if e.deepl_error:
            click.echo(f"  deepl: {e.deepl_error}")
        raise SystemExit(1)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(f"PASS [{result.provider}] {result.translated}")
    if result.azure_error:
        click.echo(f"  azure failed first: {result.azure_error}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(approvals_group)
    app.cli.add_command(translate_group)
