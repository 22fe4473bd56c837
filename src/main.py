"""
Administrative CLI for the claims backend.

Runs directory and claims operations with the service account's privileges.
"""
import asyncio
import json
import click
from typing import Optional

from .api.services.claims_service import ClaimsMutationService
from .api.services.employee_service import EmployeeDirectoryService, EmployeeFilters, configure_collation
from .claims import checker
from .identity.caller import CallerContext
from .identity.provider import FirebaseIdentityProvider
from .utils.logger import setup_logger, AuditLogger


class ClaimsAdmin:
    """Service-account front end over the directory and mutation services."""

    def __init__(self, log_level: str = "INFO", log_file: Optional[str] = None):
        self.logger = setup_logger("claims_admin", log_level, log_file)
        self.audit = AuditLogger(self.logger)
        self.caller = CallerContext.system()

        provider = FirebaseIdentityProvider()
        self.directory = EmployeeDirectoryService(provider, audit=self.audit)
        self.claims = ClaimsMutationService(provider, audit=self.audit)

    def list_employees(self, filters: EmployeeFilters, page_size: int, order_by: str, descending: bool) -> dict:
        page = asyncio.run(self.directory.get_employees(
            self.caller,
            filters=filters,
            page_size=page_size,
            order_by=order_by,
            order_direction="desc" if descending else "asc",
        ))
        return page.to_dict()

    def employee_stats(self) -> dict:
        return asyncio.run(self.directory.get_employee_stats(self.caller))

    def show_claims(self, uid: str) -> dict:
        account = asyncio.run(self.claims.provider.get_account(uid))
        return {
            'uid': account.uid,
            'email': account.email,
            'disabled': account.disabled,
            'claims': account.custom_claims,
            'access': checker.portal_access(account.custom_claims),
            'mirror': self.claims.firestore.get_user_claims_mirror(uid),
        }

    def set_disabled(self, uid: str, disabled: bool) -> dict:
        account = asyncio.run(self.claims.set_account_disabled(self.caller, uid, disabled))
        return account.to_dict()


@click.group()
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              default='WARNING', help='Logging level')
@click.option('--log-file', type=str,
              help='Log file path (optional)')
@click.option('--summary', is_flag=True, help='Print the audit summary when the command finishes')
@click.pass_context
def main(ctx, log_level, log_file, summary):
    """
    Claims administration.

    Lists and summarizes employees and inspects or disables accounts using
    the Firebase service account configured in the environment.
    """
    configure_collation()
    ctx.obj = ClaimsAdmin(log_level, log_file)
    if summary:
        ctx.call_on_close(ctx.obj.audit.print_summary)


@main.group()
def employees():
    """Employee directory commands."""


@employees.command('list')
@click.option('--department', help='Exact department')
@click.option('--role', help='Exact role')
@click.option('--position', help='Exact position')
@click.option('--active/--inactive', default=None, help='Filter on isActive')
@click.option('--region', 'assigned_region', help='Assigned region')
@click.option('--parish', 'assigned_parish', help='Assigned parish')
@click.option('--access-level', type=click.IntRange(1, 5), help='Exact access level')
@click.option('--search', 'search_term', help='Substring of email, name, id, department or position')
@click.option('--page-size', type=click.IntRange(1, 1000), default=50, show_default=True)
@click.option('--order-by', default='displayName', show_default=True)
@click.option('--desc', 'descending', is_flag=True, help='Sort descending')
@click.pass_obj
def list_employees(admin, department, role, position, active, assigned_region, assigned_parish,
                   access_level, search_term, page_size, order_by, descending):
    """List employees, one per line."""
    filters = EmployeeFilters(
        department=department,
        role=role,
        position=position,
        is_active=active,
        assigned_region=assigned_region,
        assigned_parish=assigned_parish,
        access_level=access_level,
        search_term=search_term,
    )
    try:
        page = admin.list_employees(filters, page_size, order_by, descending)
    except Exception as e:
        click.echo(f"Error: {e}")
        click.get_current_context().exit(1)

    for employee in page['employees']:
        claims = employee['customClaims']
        click.echo(
            f"{employee['uid']}  {employee['displayName'] or '-'}  <{employee['email']}>  "
            f"{claims.get('role')}/{claims.get('department')}/{claims.get('position')}  "
            f"level {claims.get('accessLevel')}"
        )
    click.echo(f"\nShowing {len(page['employees'])} of {page['totalCount']} employees")
    if page['hasMore']:
        click.echo("More results available; narrow the filters or raise --page-size")


@employees.command('stats')
@click.pass_obj
def employee_stats(admin):
    """Show employee statistics."""
    try:
        stats = admin.employee_stats()
    except Exception as e:
        click.echo(f"Error: {e}")
        click.get_current_context().exit(1)

    click.echo("Employee Statistics:")
    click.echo(f"Total: {stats['total']}  Active: {stats['active']}  Inactive: {stats['inactive']}")
    click.echo(f"Average access level: {stats['averageAccessLevel']:.2f}")
    for title, key in (("By role", 'byRole'), ("By department", 'byDepartment'),
                       ("By position", 'byPosition'), ("By region", 'byRegion')):
        click.echo(f"{title}:")
        for name, count in stats[key].items():
            click.echo(f"  {name}: {count}")


@main.group()
def claims():
    """Account claims commands."""


@claims.command('show')
@click.argument('uid')
@click.pass_obj
def show_claims(admin, uid):
    """Print an account's claims as JSON."""
    try:
        click.echo(json.dumps(admin.show_claims(uid), indent=2, default=str))
    except Exception as e:
        click.echo(f"Error: {e}")
        click.get_current_context().exit(1)


@claims.command('set-disabled')
@click.argument('uid')
@click.option('--enable', is_flag=True, help='Re-enable instead of disabling')
@click.pass_obj
def set_disabled(admin, uid, enable):
    """Soft-disable (or re-enable) an account."""
    try:
        account = admin.set_disabled(uid, not enable)
    except Exception as e:
        click.echo(f"Error: {e}")
        click.get_current_context().exit(1)
    click.echo(f"{account['uid']}: {'disabled' if account['disabled'] else 'enabled'}")


if __name__ == "__main__":
    main()
