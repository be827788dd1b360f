#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Region and brand specific endpoints of the BlueLink cloud."""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Optional
import json

from bluelinkconnect.exceptions import BlueLinkConfigException

OAUTH_FIELDS = {
    'clientId': 'client_id',
    'applicationId': 'application_id',
    'clientSecret': 'client_secret',
    'authorizeUrl': 'authorize_url',
    'tokenUrl': 'token_url',
    'loginUrl': 'login_url',
    'browserFallbackUrl': 'browser_fallback_url',
    'integrationInfoUrl': 'integration_info_url',
    'requiredActionUrl': 'required_action_url',
    'silentSigninUrl': 'silent_signin_url',
}


@dataclass(frozen=True)
class OAuthEndpoints:
    client_id: Optional[str] = None
    application_id: Optional[str] = None
    client_secret: Optional[str] = None
    authorize_url: Optional[str] = None
    token_url: Optional[str] = None
    login_url: Optional[str] = None
    browser_fallback_url: Optional[str] = None
    integration_info_url: Optional[str] = None
    required_action_url: Optional[str] = None
    silent_signin_url: Optional[str] = None

    @property
    def effective_application_id(self) -> Optional[str]:
        """Application id header value, the client id when none is configured."""
        if self.application_id and self.application_id.strip():
            return self.application_id
        return self.client_id


@dataclass(frozen=True)
class Endpoints:
    base_url: str
    oauth: OAuthEndpoints = field(default_factory=OAuthEndpoints)

    @classmethod
    def from_dict(cls, data: dict) -> Endpoints:
        """Build from {"oauth": {...camelCase keys}, "ccapi": {"baseUrl": ...}}."""
        oauth = data.get('oauth') or {}
        ccapi = data.get('ccapi') or {}
        base_url = ccapi.get('baseUrl')
        if not base_url:
            raise BlueLinkConfigException('Endpoint definition is missing ccapi.baseUrl')
        values = {attr: oauth.get(key) for key, attr in OAUTH_FIELDS.items()}
        return cls(base_url=base_url, oauth=OAuthEndpoints(**values))

    def with_client(self, client_id: Optional[str] = None, client_secret: Optional[str] = None) -> Endpoints:
        """Copy with user supplied OAuth client credentials."""
        overrides = {}
        if client_id:
            overrides['client_id'] = client_id
        if client_secret:
            overrides['client_secret'] = client_secret
        if not overrides:
            return self
        return replace(self, oauth=replace(self.oauth, **overrides))


def load_endpoint_tree(path: str) -> dict:
    """Read a {region: {brand: endpoints}} tree from a JSON file."""
    try:
        with open(path, 'r', encoding='utf-8') as fd_tree:
            return json.load(fd_tree)
    except (OSError, ValueError) as error:
        raise BlueLinkConfigException(f'Could not read endpoint definitions from {path}: {error}') from error


def resolve_endpoints(tree: dict, region: str, brand: str) -> Endpoints:
    """Look up endpoints for region and brand."""
    node = (tree.get(region) or {}).get(brand)
    if not isinstance(node, dict):
        raise BlueLinkConfigException(f'No endpoints for region={region} brand={brand}')
    return Endpoints.from_dict(node)
