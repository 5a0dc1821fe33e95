"""Models for the Agency Sales Dashboard.

This module contains models for agencies (tenants), their agents, property
transactions, the cached sales statistics snapshot, and key/value settings.
"""

from decimal import Decimal
from typing import Optional

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q, Value
from django.db.models.functions import Coalesce
from django.utils import timezone


class Agency(models.Model):
    """Represents a real estate agency, the multi-tenant boundary.

    Attributes:
        name: Trading name of the agency.
        contact_name: Primary contact person.
        contact_email: Primary contact email.
        rla_number: Registered Land Agent licence number.
        active: Whether the agency is currently active.
    """

    name = models.CharField(max_length=255, db_index=True)
    contact_name = models.CharField(max_length=255)
    contact_email = models.EmailField()
    contact_phone = models.CharField(max_length=50, blank=True, null=True)
    rla_number = models.CharField(
        max_length=50,
        blank=True,
        null=True,
        help_text="Registered Land Agent licence number",
    )
    logo_url = models.CharField(max_length=500, blank=True, null=True)
    active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        """Meta options for Agency model."""

        verbose_name = "Agency"
        verbose_name_plural = "Agencies"
        ordering = ["name"]

    def __str__(self) -> str:
        """Return string representation of the agency.

        Returns:
            The agency name.
        """
        return self.name


class Agent(models.Model):
    """Represents a sales agent working for an agency.

    Attributes:
        name: Full name of the agent.
        email: Contact email.
        role: Job title, defaults to "Sales Agent".
        agency: The agency the agent belongs to, if any.
    """

    name = models.CharField(max_length=255, db_index=True)
    email = models.EmailField()
    phone = models.CharField(max_length=50, blank=True, null=True)
    role = models.CharField(max_length=100, default="Sales Agent", blank=True)
    profile_picture = models.CharField(max_length=500, blank=True, null=True)
    agency = models.ForeignKey(
        Agency,
        on_delete=models.SET_NULL,
        related_name="agents",
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        """Meta options for Agent model."""

        verbose_name = "Agent"
        verbose_name_plural = "Agents"
        ordering = ["name"]

    def __str__(self) -> str:
        """Return string representation of the agent.

        Returns:
            The agent name.
        """
        return self.name


class Transaction(models.Model):
    """A property transaction from listing through to settlement.

    Attributes:
        property_address: Street address of the property.
        property_suburb: Suburb of the property.
        price: Listing or sale price.
        agent: The agent handling the transaction.
        status: Current stage of the transaction.
        listed_date: Date the property was listed.
        transaction_date: Date the property sold.
    """

    class PropertyType(models.TextChoices):
        """Kinds of property that can be transacted."""

        HOUSE = "House", "House"
        APARTMENT = "Apartment", "Apartment"
        TOWNHOUSE = "Townhouse", "Townhouse"
        LAND = "Land", "Land"

    class Status(models.TextChoices):
        """Lifecycle stages of a transaction."""

        LISTED = "listed", "Listed"
        UNDER_OFFER = "under_offer", "Under Offer"
        SOLD = "sold", "Sold"
        SETTLED = "settled", "Settled"
        WITHDRAWN = "withdrawn", "Withdrawn"
        EXPIRED = "expired", "Expired"
        OFF_MARKET = "off_market", "Off Market"
        AUCTIONED = "auctioned", "Auctioned"
        PASSED_IN = "passed_in", "Passed In"
        PENDING = "pending", "Pending"

    CLOSED_STATUSES = (Status.SOLD, Status.SETTLED)

    property_address = models.CharField(max_length=255, db_index=True)
    property_suburb = models.CharField(max_length=100, db_index=True)
    property_postcode = models.CharField(max_length=10, blank=True, null=True)
    property_type = models.CharField(
        max_length=20,
        choices=PropertyType.choices,
        db_index=True,
    )
    bedrooms = models.PositiveIntegerField(default=0, blank=True)
    bathrooms = models.PositiveIntegerField(default=0, blank=True)
    price = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal("0.00"),
        db_index=True,
    )
    agent = models.ForeignKey(
        Agent,
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    agent_name = models.CharField(max_length=255, blank=True, null=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.LISTED,
        blank=True,
        db_index=True,
    )
    listed_date = models.DateField(null=True, blank=True)
    transaction_date = models.DateField(null=True, blank=True, db_index=True)
    agency = models.ForeignKey(
        Agency,
        on_delete=models.SET_NULL,
        related_name="transactions",
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        """Meta options for Transaction model."""

        verbose_name = "Transaction"
        verbose_name_plural = "Transactions"
        ordering = ["-transaction_date", "-id"]

    def __str__(self) -> str:
        """Return string representation of the transaction.

        Returns:
            Address and suburb of the property.
        """
        return f"{self.property_address}, {self.property_suburb}"

    def clean(self) -> None:
        """Validate that the listing date does not come after the sale date.

        Raises:
            ValidationError: If listed_date is later than transaction_date.
        """
        super().clean()
        if (
            self.listed_date
            and self.transaction_date
            and self.listed_date > self.transaction_date
        ):
            raise ValidationError(
                {"listed_date": "Listed date cannot be after the transaction date."}
            )

    def save(self, *args, **kwargs) -> None:
        """Keep the denormalized agent name and agency in step with the agent."""
        if self.agent_id and not self.agent_name:
            self.agent_name = self.agent.name
        if self.agent_id and self.agency_id is None:
            self.agency_id = self.agent.agency_id
        super().save(*args, **kwargs)

    @property
    def days_on_market(self) -> Optional[int]:
        """Whole days between listing and sale.

        Returns:
            Number of days, or None if either date is missing.
        """
        if not self.listed_date or not self.transaction_date:
            return None
        return (self.transaction_date - self.listed_date).days


class SalesStats(models.Model):
    """Cached sales statistics snapshot.

    Fully recomputed on every refresh and overwritten in place. There is at
    most one row per agency; the row without an agency holds the snapshot
    across all agencies.

    Attributes:
        total_sold: Number of transactions counted.
        total_revenue: Sum of transaction prices.
        avg_price: Average transaction price.
        avg_days_on_market: Average whole days between listing and sale.
    """

    total_sold = models.IntegerField(default=0)
    total_revenue = models.DecimalField(
        max_digits=18,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    avg_price = models.DecimalField(
        max_digits=18,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    avg_days_on_market = models.IntegerField(default=0)
    period_start = models.DateTimeField()
    period_end = models.DateTimeField()
    agency = models.OneToOneField(
        Agency,
        on_delete=models.CASCADE,
        related_name="sales_stats",
        null=True,
        blank=True,
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        """Meta options for SalesStats model."""

        verbose_name = "Sales Stats"
        verbose_name_plural = "Sales Stats"
        constraints = [
            # NULL agencies are distinct to the database; map the
            # all-agencies row onto 0 so it stays unique too.
            models.UniqueConstraint(
                Coalesce("agency", Value(0), output_field=models.BigIntegerField()),
                name="unique_sales_stats_per_tenant",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation of the stats snapshot.

        Returns:
            String with tenant, count and revenue.
        """
        tenant = self.agency.name if self.agency_id else "All agencies"
        return f"{tenant} - {self.total_sold} sold - ${self.total_revenue:,.2f}"


class Setting(models.Model):
    """A key/value application setting grouped by category.

    Attributes:
        key: Setting name, unique per agency.
        value: Setting value stored as text.
        category: Group the setting belongs to.
    """

    class Category(models.TextChoices):
        """Setting groups."""

        BRANDING = "branding", "Branding"
        TV_VIEW = "tv_view", "TV View"
        GENERAL = "general", "General"

    key = models.CharField(max_length=100, db_index=True)
    value = models.TextField(blank=True, default="")
    category = models.CharField(
        max_length=20,
        choices=Category.choices,
        default=Category.GENERAL,
        db_index=True,
    )
    agency = models.ForeignKey(
        Agency,
        on_delete=models.CASCADE,
        related_name="settings",
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        """Meta options for Setting model."""

        verbose_name = "Setting"
        verbose_name_plural = "Settings"
        ordering = ["category", "key"]
        constraints = [
            models.UniqueConstraint(
                fields=["key", "agency"],
                name="unique_setting_key_per_agency",
            ),
            models.UniqueConstraint(
                fields=["key"],
                condition=Q(agency__isnull=True),
                name="unique_global_setting_key",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation of the setting.

        Returns:
            String with category, key and value.
        """
        return f"{self.category}.{self.key} = {self.value}"

    @classmethod
    def get_value(
        cls, key: str, default: Optional[str] = None, agency: Optional[Agency] = None
    ) -> Optional[str]:
        """Get a setting value by key.

        Args:
            key: The setting key.
            default: Value returned when the setting does not exist.
            agency: Tenant to read the setting for.

        Returns:
            The stored value or the default.
        """
        setting = cls.objects.filter(key=key, agency=agency).first()
        return setting.value if setting else default

    @classmethod
    def upsert(
        cls,
        key: str,
        value: str,
        category: str = Category.GENERAL,
        agency: Optional[Agency] = None,
    ) -> "Setting":
        """Create or update a setting by key.

        Args:
            key: The setting key.
            value: The new value.
            category: Category to file the setting under.
            agency: Tenant the setting belongs to.

        Returns:
            The saved Setting.
        """
        setting, _ = cls.objects.update_or_create(
            key=key,
            agency=agency,
            defaults={"value": value, "category": category},
        )
        return setting
