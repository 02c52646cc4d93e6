"""
Browser-level HTTP mocks.

Builds an init script that, injected into a browser context before any page
script runs, answers fetch() and XMLHttpRequest calls matching a wildcard
pattern with a canned response. Pattern semantics are the same as the fake
bridge (devbridge.fakes): '*' matches any substring, the rest is literal,
the whole URL must match, and the first matching pattern wins.

The script is the only output: the browser that runs it is not our concern.
"""
import http
import json
from typing import Any, Dict, List, Mapping, Optional

from devbridge.fakes import normalize_rule

RULES_PLACEHOLDER = '/*__DEVBRIDGE_RULES__*/'

MOCK_SCRIPT_TEMPLATE = r"""// devbridge browser mock interceptor
(function () {
    'use strict';

    if (window.__devbridgeMocksInstalled) {
        return;
    }
    window.__devbridgeMocksInstalled = true;

    var rules = /*__DEVBRIDGE_RULES__*/;

    function escapeRegExp(text) {
        return text.replace(/[.*+?^${}()|[\]\\\/]/g, '\\$&');
    }

    function compile(pattern) {
        return new RegExp('^' + pattern.split('*').map(escapeRegExp).join('[\\s\\S]*') + '$');
    }

    var compiled = rules.map(function (entry) {
        return { regex: compile(entry[0]), rule: entry[1] };
    });

    function absoluteUrl(url) {
        try {
            return new URL(url, window.location.href).href;
        } catch (e) {
            return String(url);
        }
    }

    function findRule(url) {
        var candidates = [String(url), absoluteUrl(url)];
        for (var i = 0; i < compiled.length; i++) {
            for (var j = 0; j < candidates.length; j++) {
                if (compiled[i].regex.test(candidates[j])) {
                    return compiled[i].rule;
                }
            }
        }
        return null;
    }

    function bodyText(rule) {
        return typeof rule.body === 'string' ? rule.body : JSON.stringify(rule.body);
    }

    function hasNullBody(status) {
        return [101, 204, 205, 304].indexOf(status) !== -1;
    }

    var originalFetch = window.fetch;
    if (originalFetch) {
        window.fetch = function (input, init) {
            var url = (typeof input === 'string' || (typeof URL !== 'undefined' && input instanceof URL))
                ? String(input)
                : input.url;
            var rule = findRule(url);
            if (!rule) {
                return originalFetch.apply(this, arguments);
            }
            return Promise.resolve(new Response(hasNullBody(rule.status) ? null : bodyText(rule), {
                status: rule.status,
                statusText: rule.statusText,
                headers: rule.headers
            }));
        };
    }

    var XHR = window.XMLHttpRequest;
    if (XHR) {
        var originalOpen = XHR.prototype.open;
        var originalSend = XHR.prototype.send;

        XHR.prototype.open = function (method, url) {
            this.__devbridgeUrl = absoluteUrl(url);
            this.__devbridgeRule = findRule(url);
            return originalOpen.apply(this, arguments);
        };

        XHR.prototype.send = function () {
            var rule = this.__devbridgeRule;
            if (!rule) {
                return originalSend.apply(this, arguments);
            }

            var xhr = this;
            var text = bodyText(rule);
            var headers = {};
            Object.keys(rule.headers).forEach(function (name) {
                headers[name.toLowerCase()] = String(rule.headers[name]);
            });

            function define(name, value) {
                Object.defineProperty(xhr, name, { configurable: true, value: value });
            }

            var response = text;
            if (xhr.responseType === 'json') {
                try {
                    response = JSON.parse(text);
                } catch (e) {
                    response = null;
                }
            }

            define('readyState', 4);
            define('status', rule.status);
            define('statusText', rule.statusText);
            define('responseURL', xhr.__devbridgeUrl);
            define('responseText', text);
            define('response', response);
            define('getResponseHeader', function (name) {
                var value = headers[String(name).toLowerCase()];
                return value === undefined ? null : value;
            });
            define('getAllResponseHeaders', function () {
                return Object.keys(headers).map(function (name) {
                    return name + ': ' + headers[name];
                }).join('\r\n');
            });

            setTimeout(function () {
                xhr.dispatchEvent(new Event('readystatechange'));
                xhr.dispatchEvent(new ProgressEvent('load'));
                xhr.dispatchEvent(new ProgressEvent('loadend'));
            }, 0);
        };
    }
})();
"""


def _script_rule(rule: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    normalized = normalize_rule(rule)
    headers = normalized['headers']
    if not isinstance(normalized['body'], str) and not any(k.lower() == 'content-type' for k in headers):
        headers['Content-Type'] = 'application/json'
    try:
        status_text = http.HTTPStatus(normalized['status']).phrase
    except ValueError:
        status_text = ''
    return {
        'status': normalized['status'],
        'statusText': status_text,
        'headers': {str(k): str(v) for k, v in headers.items()},
        'body': normalized['body'],
    }


def encode_for_script(data: Any) -> str:
    """
    JSON-encode data so it is a valid JavaScript expression anywhere in a script.

    ensure_ascii escapes U+2028/U+2029; '<', '>' and '&' are escaped so the
    data cannot close a surrounding <script> element.
    """
    encoded = json.dumps(data, ensure_ascii=True, separators=(',', ':'))
    return encoded.replace('<', '\\u003c').replace('>', '\\u003e').replace('&', '\\u0026')


def generate_mock_script(mocks: Mapping[str, Optional[Dict[str, Any]]]) -> str:
    """Render the interceptor script for mocks (pattern -> {status?, body?, headers?})."""
    # Ordered pairs rather than an object so pattern order survives in JavaScript
    entries: List[List[Any]] = [[str(pattern), _script_rule(rule)] for pattern, rule in mocks.items()]
    head, tail = MOCK_SCRIPT_TEMPLATE.split(RULES_PLACEHOLDER)
    return head + encode_for_script(entries) + tail


class BrowserMockTable:
    """In-memory browser mocks for the current test. Never written to disk."""

    def __init__(self):
        self._mocks: Dict[str, Dict[str, Any]] = {}

    def set(self, mocks: Mapping[str, Dict[str, Any]]) -> None:
        """Replace all mocks."""
        self._mocks = dict(mocks)

    def get(self) -> Dict[str, Dict[str, Any]]:
        return dict(self._mocks)

    def clear(self) -> None:
        self._mocks = {}

    def has_mocks(self) -> bool:
        return bool(self._mocks)

    def count(self) -> int:
        return len(self._mocks)

    def script(self) -> str:
        return generate_mock_script(self._mocks)
