"""Flask CLI commands for Spare."""

from __future__ import annotations

import click


def init_app(app) -> None:
    """Register CLI commands on the Flask app."""

    @app.cli.command("spare-init-db")
    def spare_init_db() -> None:
        """Create missing tables."""

        from .extensions import get_context
        from .infra.database import init_database

        init_database(get_context().engine)
        click.echo("Database schema is up to date.")

    @app.cli.command("spare-seed")
    @click.option("--skip-taxes", is_flag=True, default=False, help="Do not load the tax tables")
    def spare_seed(skip_taxes: bool) -> None:
        """Load system categories, default plans and tax reference data."""

        from .extensions import get_context
        from .services import billing, categories, taxes

        ctx = get_context()
        click.echo(f"System categories: {categories.seed_system_categories(ctx)} created")
        click.echo(f"Plans: {billing.seed_plans(ctx)} created")
        if not skip_taxes:
            click.echo(f"Tax rows: {taxes.seed_tax_data(ctx)} created")

    @app.cli.command("spare-create-admin")
    @click.argument("email")
    @click.option("--name", default="", help="Display name")
    @click.option("--super", "is_super", is_flag=True, default=False, help="Grant the super_admin role")
    @click.password_option()
    def spare_create_admin(email: str, name: str, is_super: bool, password: str) -> None:
        """Create an administrator account."""

        from .errors import AppError
        from .extensions import get_context
        from .services.auth import create_user

        try:
            user = create_user(
                email=email,
                password=password,
                name=name,
                role="super_admin" if is_super else "admin",
                session_factory=get_context().session_factory,
            )
        except AppError as exc:
            raise click.ClickException(exc.message) from exc
        click.echo(f"Created {user.role} {user.email} (id={user.id})")

    @app.cli.command("spare-process-jobs")
    def spare_process_jobs() -> None:
        """Run pending and retryable import jobs once."""

        from .extensions import get_context
        from .services.import_jobs import process_pending_jobs

        result = process_pending_jobs(get_context())
        click.echo(f"Processed {result['processed']} job(s)")
        for row in result["results"]:
            click.echo(f"  job {row['job_id']}: {row['status']}")
