"""Factory Boy factories for ControlHS test data generation."""

import factory
from factory.django import DjangoModelFactory


class SectorFactory(DjangoModelFactory):
    """Factory for Sector model."""

    class Meta:
        model = "assets.Sector"
        django_get_or_create = ("name",)

    name = factory.Sequence(lambda n: f"Sector {n}")
    description = factory.Faker("sentence")


class UserFactory(DjangoModelFactory):
    """Factory for CustomUser model."""

    class Meta:
        model = "accounts.CustomUser"
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.LazyAttribute(lambda o: f"{o.username}@example.com")
    display_name = factory.Faker("name")
    role = "user"
    is_active = True

    @factory.post_generation
    def password(self, create, extracted, **kwargs):
        pwd = extracted or "testpass123!"
        self.set_password(pwd)
        if create:
            self.save(update_fields=["password"])


class AssetFactory(DjangoModelFactory):
    """Factory for Asset model."""

    class Meta:
        model = "assets.Asset"

    name = factory.Sequence(lambda n: f"Asset {n}")
    serial_number = factory.Sequence(lambda n: f"SN-{n:05d}")
    sector = factory.SubFactory(SectorFactory)
    custodian = factory.SubFactory(UserFactory)
    status = "active"


class TransferRequestFactory(DjangoModelFactory):
    """Factory for TransferRequest model.

    The origin is snapshotted from the asset. Pass ``destination_sector``
    and/or ``destination_custodian``; a fresh destination sector is
    created by default.
    """

    class Meta:
        model = "assets.TransferRequest"

    asset = factory.SubFactory(AssetFactory)
    origin_sector = factory.LazyAttribute(lambda o: o.asset.sector)
    origin_custodian = factory.LazyAttribute(lambda o: o.asset.custodian)
    destination_sector = factory.SubFactory(SectorFactory)
    destination_custodian = None
    reason = "Moving to a new sector for the project."
    requester = factory.LazyAttribute(
        lambda o: o.asset.custodian or UserFactory()
    )


class AuditLogFactory(DjangoModelFactory):
    """Factory for AuditLog model."""

    class Meta:
        model = "assets.AuditLog"

    action = "create_transfer"
    entity = "transfer"
    entity_id = factory.Sequence(lambda n: n + 1)
    actor = factory.SubFactory(UserFactory)
    payload = factory.LazyFunction(dict)
