"""CLI commands for the MetaLedger API."""

import click

from metaledger_api.bulk.tokens import SQLPreviewTokenStore
from metaledger_api.db.seed import seed_all
from metaledger_api.db.session import SessionLocal
from metaledger_api.utils.time import utcnow


@click.group()
def cli():
    """MetaLedger API CLI."""
    pass


@cli.command()
def seed():
    """Seed system fields and a demo tenant."""
    click.echo("Seeding initial data...")
    db = SessionLocal()
    try:
        seed_all(db)
        click.echo("✓ Seed data created.")
    except Exception as e:
        click.echo(f"✗ Error seeding data: {e}", err=True)
        db.rollback()
        raise SystemExit(1) from e
    finally:
        db.close()


@cli.command("purge-expired-tokens")
def purge_expired_tokens():
    """Delete expired bulk preview tokens from the database store."""
    db = SessionLocal()
    try:
        removed = SQLPreviewTokenStore(db).purge_expired(utcnow())
        click.echo(f"✓ Purged {removed} expired preview token(s).")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
