"""
Django management command to explain an access decision.
"""

import json

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from ...exceptions import NotFoundError
from ...security.engine import decision_engine


class Command(BaseCommand):
    """Print the decision for a request and the outcome of every policy."""

    help = "Explain the access decision for <user> performing <action> on <resource>"

    def add_arguments(self, parser):
        parser.add_argument("user", help="User id, username or e-mail")
        parser.add_argument("resource")
        parser.add_argument("action")
        parser.add_argument(
            "--attrs",
            type=str,
            default=None,
            help="Resource attributes as a JSON object",
        )

    def _find_user(self, reference: str):
        user_model = get_user_model()
        lookup = user_model.objects.all()
        if reference.isdigit():
            user = lookup.filter(pk=int(reference)).first()
            if user is not None:
                return user
        username_field = getattr(user_model, "USERNAME_FIELD", "username")
        user = lookup.filter(**{username_field: reference}).first()
        if user is None:
            user = lookup.filter(email__iexact=reference).first()
        if user is None:
            raise CommandError(f"User '{reference}' does not exist")
        return user

    def handle(self, *args, **options):
        attrs = None
        if options.get("attrs"):
            try:
                attrs = json.loads(options["attrs"])
            except json.JSONDecodeError as exc:
                raise CommandError(f"--attrs is not valid JSON: {exc}") from exc

        user = self._find_user(options["user"])
        try:
            explanation = decision_engine.explain(
                user, options["resource"], options["action"], attrs
            )
        except NotFoundError as exc:
            raise CommandError(str(exc)) from exc

        decision = explanation.decision
        verdict = "ALLOW" if decision.allowed else "DENY"
        style = self.style.SUCCESS if decision.allowed else self.style.ERROR
        policy = decision.matched_policy.name if decision.matched_policy else "-"
        self.stdout.write(style(f"{verdict} ({decision.reason}) policy: {policy}"))
        self.stdout.write(
            f"Roles: {', '.join(sorted(explanation.subject.role_names)) or '-'}"
        )
        self.stdout.write(
            f"Permission keys: {', '.join(sorted(explanation.permission_keys)) or '-'}"
        )
        if not explanation.evaluations:
            self.stdout.write("No applicable policies")
        for evaluation in explanation.evaluations:
            outcome = "error" if evaluation.error else ("match" if evaluation.matched else "no match")
            line = f"  [{evaluation.policy.pk}] {evaluation.policy.name} {evaluation.policy.effect}: {outcome}"
            if evaluation.error:
                line += f" ({evaluation.error})"
            self.stdout.write(line)
