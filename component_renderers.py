"""Default markup for panels, triggers and components (sandboxed Jinja2)."""

from __future__ import annotations

from typing import Any, Callable, Dict

from jinja2 import Undefined
from jinja2.sandbox import ImmutableSandboxedEnvironment
from markupsafe import Markup

from panelkit.currency import DecimalCurrencyConverter, currency_decimals
from panelkit.text_clean import to_int

Renderer = Callable[[dict], str]

_ALLOWED_FILTERS = {
    "default",
    "lower",
    "upper",
    "title",
    "trim",
    "join",
    "length",
    "int",
    "float",
    "tojson",
    "escape",
    "e",
    "format",
    "string",
}

_converter = DecimalCurrencyConverter()


def _major_units(amount: Any, currency: str = "USD") -> str:
    places = currency_decimals(currency)
    return f"{_converter.from_minor_units(to_int(amount), currency):.{places}f}"


def _env() -> ImmutableSandboxedEnvironment:
    env = ImmutableSandboxedEnvironment(autoescape=True, undefined=Undefined, trim_blocks=True, lstrip_blocks=True)
    env.globals = {"range": range}
    env.filters = {key: val for key, val in env.filters.items() if key in _ALLOWED_FILTERS}
    env.filters["major_units"] = _major_units
    return env


def _sanitize_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(key): _sanitize_value(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize_value(val) for val in value]
    if callable(value):
        return None
    return str(value)


TEMPLATES: Dict[str, str] = {
    "panel": """
<div id="{{ id }}" class="flyout flyout-{{ size }} flyout-right" data-flyout-id="{{ id }}">
<div class="flyout-header">
<div class="flyout-header-content">
<h2 class="flyout-title">{{ title }}</h2>
{% if subtitle %}<p class="flyout-subtitle">{{ subtitle }}</p>{% endif %}
</div>
<button type="button" class="flyout-close" aria-label="Close"><span class="icon icon-close"></span></button>
</div>
{% if tabs %}
<div class="flyout-tabs"><nav class="flyout-tab-nav" role="tablist">
{% for tab in tabs %}
<a href="#tab-{{ tab.id }}" class="flyout-tab{% if tab.active %} active{% endif %}" role="tab" data-tab="{{ tab.id }}" aria-selected="{{ 'true' if tab.active else 'false' }}">{{ tab.label }}</a>
{% endfor %}
</nav></div>
{% endif %}
<div class="flyout-body">
{% if tabs %}
{% for tab in tabs %}
<div id="tab-{{ tab.id }}" class="flyout-tab-content{% if tab.active %} active{% endif %}" role="tabpanel">{{ body.get(tab.id, '') }}</div>
{% endfor %}
{% else %}
{{ body.get('main', '') }}
{% endif %}
</div>
{% if footer %}<div class="flyout-footer">{{ footer }}</div>{% endif %}
</div>
""",
    "action_bar": """
<div class="flyout-actions">
{% for action in actions %}
<button type="{{ 'submit' if action.type == 'submit' else 'button' }}" class="button button-{{ action.style|default('secondary') }}{% if action.class %} {{ action.class }}{% endif %}">{{ action.text }}</button>
{% endfor %}
</div>
""",
    "trigger_button": """<button type="button"{% for k, v in attrs.items() %} {{ k }}="{{ v }}"{% endfor %}>{% if icon %}<span class="icon icon-{{ icon }}"></span> {% endif %}{{ text }}</button>""",
    "trigger_link": """<a href="#"{% for k, v in attrs.items() %} {{ k }}="{{ v }}"{% endfor %}>{{ text }}</a>""",
    "field": """
<div class="flyout-field flyout-field-{{ type }}">
{% if label and type != 'hidden' %}<label for="{{ dom_id }}">{{ label }}</label>{% endif %}
{% if type == 'textarea' %}
<textarea id="{{ dom_id }}" name="{{ name }}" rows="{{ rows|default(4) }}">{{ value if value is not none else '' }}</textarea>
{% elif type in ('select', 'ajax_select') %}
<select id="{{ dom_id }}" name="{{ name }}{% if multiple %}[]{% endif %}"{% if multiple %} multiple{% endif %}{% if ajax_url %} data-ajax-url="{{ ajax_url }}" data-ajax-params='{{ ajax_params|tojson }}'{% endif %}{% if nonce %} data-nonce="{{ nonce }}"{% endif %}>
{% for opt_value, opt_label in (options or {}).items() %}
<option value="{{ opt_value }}"{% if opt_value|string in selected %} selected{% endif %}>{{ opt_label }}</option>
{% endfor %}
</select>
{% elif type == 'toggle' %}
<input type="hidden" name="{{ name }}" value="0"><input type="checkbox" id="{{ dom_id }}" name="{{ name }}" value="1"{% if checked %} checked{% endif %}>
{% else %}
<input type="{{ input_type }}" id="{{ dom_id }}" name="{{ name }}" value="{{ value if value is not none else '' }}"{% if placeholder %} placeholder="{{ placeholder }}"{% endif %}>
{% endif %}
{% if description %}<p class="description">{{ description }}</p>{% endif %}
</div>
""",
    "component": """
<div class="flyout-component flyout-component-{{ type }}" data-component="{{ type }}" data-name="{{ name }}" data-config='{{ data|tojson }}'>
{% if label %}<h3 class="flyout-component-label">{{ label }}</h3>{% endif %}
</div>
""",
    "header": """
<div class="flyout-entity-header{% if editable %} is-editable{% endif %}">
{% if image %}<img src="{{ image }}" alt="" class="flyout-entity-image shape-{{ image_shape|default('square') }}">{% elif icon %}<span class="icon icon-{{ icon }}"></span>{% endif %}
<div class="flyout-entity-text">
<h3>{{ title }}</h3>
{% if subtitle %}<p class="subtitle">{{ subtitle }}</p>{% endif %}
{% for badge in badges or [] %}<span class="badge">{{ badge.text if badge is mapping else badge }}</span>{% endfor %}
{% if description %}<p class="description">{{ description }}</p>{% endif %}
</div>
</div>
""",
    "alert": """<div class="flyout-alert flyout-alert-{{ alert_type }}">{% if title %}<strong>{{ title }}</strong> {% endif %}{{ message }}</div>""",
    "dependency": """<div class="{{ css_class }}"{% for k, v in attrs.items() %} {{ k }}="{{ v }}"{% endfor %}>{{ html }}</div>""",
    "separator": """<div class="flyout-separator">{% if text %}<span>{{ text }}</span>{% endif %}</div>""",
    "action_buttons": """
<div class="flyout-action-buttons layout-{{ layout|default('inline') }}">
{% for button in buttons or [] %}
<button type="button" class="button button-{{ button.style }}" data-action="{{ button.action }}"{% if button.confirm %} data-confirm="{{ button.confirm }}"{% endif %}{% if not button.enabled %} disabled{% endif %}>{{ button.text }}</button>
{% endfor %}
</div>
""",
    "action_menu": """
<div class="flyout-action-menu">
<button type="button" class="button flyout-action-menu-toggle">{{ button_text|default('Actions') }}</button>
<ul class="flyout-action-menu-items">
{% for item in items or [] %}
{% if item.type == 'separator' %}<li class="separator"></li>{% else %}<li><a href="#" data-action="{{ item.action }}"{% if item.danger %} class="danger"{% endif %}{% if item.confirm %} data-confirm="{{ item.confirm }}"{% endif %}>{{ item.text }}</a></li>{% endif %}
{% endfor %}
</ul>
</div>
""",
    "notes": """
<div class="flyout-notes" data-name="{{ name }}" data-add-action="{{ add_action }}" data-delete-action="{{ delete_action }}">
{% for note in items or [] %}
<div class="flyout-note" data-note-id="{{ note.id }}">{{ note.content if note is mapping else note }}</div>
{% else %}
<p class="flyout-notes-empty">{{ empty_text|default('No notes yet.') }}</p>
{% endfor %}
{% if editable %}<textarea class="flyout-note-input" placeholder="{{ placeholder|default('Add a note...') }}"></textarea>{% endif %}
</div>
""",
    "key_value_list": """
<div class="flyout-key-value-list" data-name="{{ name }}">
{% for row in items or [] %}
<div class="flyout-key-value-row"><input type="text" name="{{ name }}[{{ loop.index0 }}][key]" value="{{ row.key }}"><input type="text" name="{{ name }}[{{ loop.index0 }}][value]" value="{{ row.value }}"></div>
{% endfor %}
</div>
""",
    "line_items": """
<table class="flyout-line-items" data-name="{{ name }}">
{% for item in items or [] %}
<tr data-id="{{ item.id }}"><td>{{ item.name }}</td><td>{{ item.quantity|default(1) }}</td><td>{{ item.price|default(0)|major_units(currency|default('USD')) }}</td></tr>
{% endfor %}
</table>
""",
    "price_config": """
<div class="flyout-price-config" data-name="{{ name }}">
<input type="text" name="{{ name }}[amount]" value="{{ amount|default(0)|major_units(currency|default('USD')) }}">
<input type="hidden" name="{{ name }}[currency]" value="{{ currency|default('USD')|upper }}">
{% if recurring_interval %}<span class="flyout-price-interval">every {{ recurring_interval_count|default(1) }} {{ recurring_interval }}</span>{% endif %}
</div>
""",
}

_INPUT_TYPES = {"email", "url", "tel", "password", "number", "date", "color", "hidden"}


def render_template(name: str, context: dict[str, Any]) -> str:
    env = _env()
    tmpl = env.from_string(TEMPLATES[name])
    return tmpl.render(_sanitize_value(context)).strip()


def render_field(config: dict) -> str:
    ftype = config.get("type") or "text"
    value = config.get("value")
    if isinstance(value, (list, tuple)):
        selected = [str(v) for v in value]
    else:
        selected = [str(value)] if value not in (None, "") else []
    context = dict(config)
    context.setdefault("dom_id", config.get("dom_id") or f"field-{config.get('key', '')}")
    context["input_type"] = ftype if ftype in _INPUT_TYPES else "text"
    context["selected"] = selected
    context["checked"] = value not in (None, "", "0", 0, False)
    return render_template("field", context)


def template_renderer(template: str) -> Renderer:
    def render(config: dict) -> str:
        return render_template(template, config)

    render.__name__ = f"render_{template}"
    return render


def render_component(config: dict) -> str:
    """Generic wrapper: the client-side component reads its data from data-config."""
    skip = {"wrapper_attrs", "label", "type", "name", "key"}
    data = {k: v for k, v in config.items() if k not in skip}
    return render_template(
        "component",
        {
            "type": config.get("type"),
            "name": config.get("name"),
            "label": config.get("label"),
            "data": data,
        },
    )


def render_alert(config: dict) -> str:
    context = dict(config)
    context["alert_type"] = config.get("alert_type") or config.get("style") or "info"
    return render_template("alert", context)


def wrap_dependency(html: str, wrapper_attrs: dict) -> str:
    """Wrap rendered field markup in the conditional-visibility container."""
    attrs = {k: v for k, v in wrapper_attrs.items() if k != "class"}
    css_class = " ".join(c for c in ("flyout-field-wrapper", wrapper_attrs.get("class")) if c)
    return render_template("dependency", {"css_class": css_class, "attrs": attrs, "html": Markup(html)})
