"""
Management command to print a payroll preview for a period.

Nothing is written to the database.
"""
from django.core.management.base import BaseCommand, CommandError

from payroll.exceptions import PayrollError
from payroll.models import PayrollRun
from payroll.services import compute_preview


class Command(BaseCommand):
    help = 'Compute and print a payroll preview for a period (YYYY-MM) without committing it'

    def add_arguments(self, parser):
        parser.add_argument('period', type=str, help='Payroll period in YYYY-MM format')
        parser.add_argument(
            '--type',
            dest='payroll_type',
            type=str,
            choices=[choice for choice, _ in PayrollRun.TYPE_CHOICES],
            default=PayrollRun.TYPE_REGULAR,
            help='Payroll type to compute'
        )
        parser.add_argument(
            '--scope',
            dest='personnel_scope',
            type=str,
            choices=[choice for choice, _ in PayrollRun.SCOPE_CHOICES],
            default=PayrollRun.SCOPE_ALL,
            help='Personnel scope to include'
        )

    def handle(self, *args, **options):
        try:
            result = compute_preview(
                period=options['period'],
                payroll_type=options['payroll_type'],
                personnel_scope=options['personnel_scope'],
            )
        except PayrollError as exc:
            raise CommandError(str(exc.detail))

        self.stdout.write(
            f"Payroll preview {result.period} {result.payroll_type} ({result.personnel_scope})"
        )
        for line in result.lines:
            self.stdout.write(
                f"  {line.employee_code:<12} {line.full_name:<30} "
                f"earnings={line.total_earnings} deductions={line.total_deductions} "
                f"contributions={line.total_contributions} net={line.net_pay}"
            )

        totals = result.totals
        self.stdout.write(self.style.SUCCESS(
            f"{totals.worker_count} worker(s): earnings={totals.total_earnings} "
            f"deductions={totals.total_deductions} contributions={totals.total_contributions} "
            f"net={totals.total_net}"
        ))
