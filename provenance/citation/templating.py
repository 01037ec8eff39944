"""
Jinja2 environment shared by the citation components.

Components render outside a Flask request (e.g. when annotating prose in a
worker), so they use their own package-loaded environment instead of
``flask.render_template``.
"""

from functools import lru_cache

from jinja2 import Environment, PackageLoader, select_autoescape
from markupsafe import Markup


@lru_cache(maxsize=1)
def get_environment() -> Environment:
    env = Environment(
        loader=PackageLoader('provenance', 'templates'),
        autoescape=select_autoescape(['html']),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    return env


def render_component(template_name: str, **context) -> Markup:
    """Render a component template to a safe HTML fragment."""
    template = get_environment().get_template(template_name)
    return Markup(template.render(**context).strip())
