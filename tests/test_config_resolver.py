"""
Config resolver tests - active config lookup by campaign and by id.
"""
import uuid

from leadledger.models.import_config import ImportConfig
from leadledger.models.tenant import Tenant
from leadledger.services.config_resolver import get_active_config_by_id, resolve_active_config


class TestResolveActiveConfig:
    async def test_finds_active_config(self, db, facebook_config):
        config = await resolve_active_config(db, facebook_config.tenant_id, "form_123", "facebook")
        assert config is not None
        assert config.id == facebook_config.id

    async def test_wrong_platform(self, db, facebook_config):
        assert await resolve_active_config(db, facebook_config.tenant_id, "form_123", "google") is None

    async def test_wrong_campaign(self, db, facebook_config):
        assert await resolve_active_config(db, facebook_config.tenant_id, "form_999", "facebook") is None

    async def test_other_tenant(self, db, facebook_config):
        assert await resolve_active_config(db, uuid.uuid4(), "form_123", "facebook") is None

    async def test_inactive_config_ignored(self, db, facebook_config, update_config):
        await update_config(facebook_config.id, active=False)
        assert await resolve_active_config(db, facebook_config.tenant_id, "form_123", "facebook") is None

    async def test_inactive_history_does_not_conflict(self, session_factory, db, facebook_config):
        """Only one active config per campaign; inactive ones may pile up."""
        async with session_factory() as session:
            session.add(ImportConfig(
                tenant_id=facebook_config.tenant_id,
                source_platform="facebook",
                campaign_id="form_123",
                active=False,
            ))
            await session.commit()

        config = await resolve_active_config(db, facebook_config.tenant_id, "form_123", "facebook")
        assert config.id == facebook_config.id


class TestGetActiveConfigById:
    async def test_found(self, db, facebook_config):
        config = await get_active_config_by_id(db, facebook_config.tenant_id, facebook_config.id)
        assert config.id == facebook_config.id

    async def test_other_tenant(self, db, facebook_config):
        assert await get_active_config_by_id(db, uuid.uuid4(), facebook_config.id) is None

    async def test_inactive(self, db, facebook_config, update_config):
        await update_config(facebook_config.id, active=False)
        assert await get_active_config_by_id(db, facebook_config.tenant_id, facebook_config.id) is None


class TestIdStorage:
    async def test_all_digit_ids_round_trip(self, session_factory, facebook_config):
        """11111111-... is all digits once hyphens are stripped."""
        async with session_factory() as session:
            tenant_id = facebook_config.tenant_id
            tenant = await session.get(Tenant, tenant_id)
            config = await resolve_active_config(session, tenant_id, "form_123", "facebook")

        assert tenant is not None
        assert isinstance(tenant.id, uuid.UUID)
        assert tenant.id == uuid.UUID("11111111-1111-1111-1111-111111111111")
        assert config.tenant_id == tenant.id
