"""Model forms validating API payloads."""

from typing import Any, Mapping, Optional

from django import forms
from django.forms.models import model_to_dict

from .models import Agency, Agent, Setting, Transaction


class AgencyForm(forms.ModelForm):
    """Validate agency create/update payloads."""

    class Meta:
        model = Agency
        fields = [
            "name",
            "contact_name",
            "contact_email",
            "contact_phone",
            "rla_number",
            "logo_url",
            "active",
        ]


class AgentForm(forms.ModelForm):
    """Validate agent create/update payloads."""

    class Meta:
        model = Agent
        fields = ["name", "email", "phone", "role", "profile_picture", "agency"]


class TransactionForm(forms.ModelForm):
    """Validate transaction create/update payloads.

    Model validation rejects a listing date later than the sale date.
    """

    class Meta:
        model = Transaction
        fields = [
            "property_address",
            "property_suburb",
            "property_postcode",
            "property_type",
            "bedrooms",
            "bathrooms",
            "price",
            "agent",
            "agent_name",
            "status",
            "listed_date",
            "transaction_date",
            "agency",
        ]

    def clean(self) -> dict:
        """Refresh the denormalized agent name when the agent changes."""
        cleaned_data = super().clean()
        agent = cleaned_data.get("agent")
        if agent and "agent" in self.changed_data and "agent_name" not in self.changed_data:
            cleaned_data["agent_name"] = agent.name
        return cleaned_data


class SettingForm(forms.Form):
    """Validate a setting upsert."""

    key = forms.CharField(max_length=100)
    value = forms.CharField(required=False)
    category = forms.ChoiceField(
        choices=Setting.Category.choices,
        required=False,
    )


def bind_form(
    form_class: type[forms.ModelForm],
    data: Mapping[str, Any],
    instance: Optional[Any] = None,
) -> forms.ModelForm:
    """Bind a model form, merging partial updates over the current values.

    Args:
        form_class: The ModelForm class.
        data: Field values from the request.
        instance: Existing object for updates.

    Returns:
        The bound form.
    """
    if instance is None:
        return form_class(data=dict(data))
    merged = model_to_dict(instance, fields=form_class._meta.fields)
    merged.update(data)
    return form_class(data=merged, instance=instance)
