"""
Apply the CREDIT_ADMIN_EMAILS allow-list.

Promotes every account whose user email is on the list. With --demote,
also demotes admin accounts whose email is no longer listed. Each
change goes through CreditService so it leaves an audit row.

Usage:
    python manage.py promote_admins
    python manage.py promote_admins --demote --dry-run
"""

from django.conf import settings
from django.core.management.base import BaseCommand

from credits.models import CreditAccount
from credits.services import CreditService

REASON = "CREDIT_ADMIN_EMAILS allow-list"


class Command(BaseCommand):
    help = "Promote accounts listed in CREDIT_ADMIN_EMAILS to admin."

    def add_arguments(self, parser):
        parser.add_argument(
            "--demote",
            action="store_true",
            help="Demote admins whose email is not on the allow-list",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report changes without applying them",
        )

    def handle(self, *args, **options):
        emails = {email.strip().lower() for email in settings.CREDIT_ADMIN_EMAILS if email.strip()}
        dry_run = options["dry_run"]

        to_promote = [
            account
            for account in CreditAccount.objects.select_related("user").filter(is_admin=False)
            if account.user.email.lower() in emails
        ]
        to_demote = []
        if options["demote"]:
            to_demote = [
                account
                for account in CreditAccount.objects.select_related("user").filter(is_admin=True)
                if account.user.email.lower() not in emails
            ]

        for account in to_promote:
            self.stdout.write(f"promote {account.user.email}")
            if not dry_run:
                CreditService.promote_to_admin(account.id, REASON, actor="promote_admins")

        for account in to_demote:
            self.stdout.write(f"demote {account.user.email}")
            if not dry_run:
                CreditService.demote_from_admin(account.id, REASON, actor="promote_admins")

        summary = f"{len(to_promote)} promoted, {len(to_demote)} demoted"
        if dry_run:
            summary += " (dry run)"
        self.stdout.write(self.style.SUCCESS(summary))
