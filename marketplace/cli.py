import click

from .extensions import db
from .models import User, UserRole
from .sessions import sweep_sessions


def register_cli(app):
    @app.cli.command('seed-admin')
    @click.option('--username', default=None)
    @click.option('--password', default=None)
    @click.option('--email', default=None)
    def seed_admin(username, password, email):
        """Create the admin account, or promote an existing user to admin."""
        username = username or app.config['DEFAULT_ADMIN_USERNAME']
        password = password or app.config['DEFAULT_ADMIN_PASSWORD']
        email = (email or app.config['DEFAULT_ADMIN_EMAIL']).strip().lower()

        user = db.session.scalar(db.select(User).filter_by(username=username))
        if not user:
            user = User(username=username, email=email)
            user.set_password(password)
            db.session.add(user)
            message = 'Admin seeded.'
        else:
            message = 'Existing user promoted to admin.'
        user.role = UserRole.admin
        db.session.commit()
        click.echo(message)

    @app.cli.command('sweep-sessions')
    def sweep_sessions_command():
        """Delete expired and revoked sessions."""
        removed = sweep_sessions()
        click.echo(f'Removed {removed} session(s).')
