# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Development server: compiled module delivery plus a Dash module viewer."""

import dash
import flask
from dash import html
from flask import Response, request

from modforge.model.module import Module
from modforge.project.project import Project

# ###############
# Public Interface
# ###############

VIEWER_PREFIX = "/_viewer/"
MANIFEST_PATH = "/build-manifest.json"


def create_app(project: Project) -> dash.Dash:
    """Create the development server for *project*.

    Compiled modules are served by their served address from the underlying
    Flask server, with the full fingerprint as ETag. The module viewer is
    mounted under ``/_viewer/``.
    """
    app = dash.Dash(
        __name__,
        title="modforge Module Viewer",
        url_base_pathname=VIEWER_PREFIX,
    )
    app.layout = lambda: _build_layout(project)
    _register_routes(app.server, project)
    return app


# ################
# Implementation
# ################


def _register_routes(server: flask.Flask, project: Project) -> None:
    """Attach manifest and module routes to the Flask server."""

    @server.route(MANIFEST_PATH)
    def build_manifest() -> Response:
        return flask.jsonify(project.manifest.model_dump(by_alias=True))

    @server.route("/<path:pathname>")
    def compiled_module(pathname: str) -> Response:
        if not pathname.endswith((".js", ".js.map")):
            flask.abort(404)
        module = project.get_module_by_path("/" + pathname)
        if module is None:
            flask.abort(404)
        return _module_response(module, source_map=pathname.endswith(".map"))


def _module_response(module: Module, *, source_map: bool) -> Response:
    """Build the response for a module or its source map, honouring If-None-Match."""
    if source_map and not module.emitted_source_map:
        flask.abort(404)
    if request.if_none_match.contains(module.fingerprint):
        response = Response(status=304)
        response.set_etag(module.fingerprint)
        return response

    if source_map:
        response = Response(module.emitted_source_map, mimetype="application/json")
    else:
        response = Response(module.emitted_content, mimetype="application/javascript")
        if module.emitted_source_map:
            response.headers["SourceMap"] = module.served_path.rsplit("/", 1)[-1] + ".map"
    response.set_etag(module.fingerprint)
    response.headers["Cache-Control"] = "no-cache"
    return response


def _build_layout(project: Project) -> html.Div:
    """Build the viewer layout from the project's current module graph."""
    modules = list(project.context.graph)
    rows = [
        html.Tr(
            [
                html.Td(module.identity),
                html.Td(module.source_kind.value),
                html.Td(html.Code(module.short_fingerprint)),
                html.Td(len(module.dependencies)),
            ]
        )
        for module in sorted(modules, key=lambda m: m.identity)
    ]
    return html.Div(
        [
            html.H1("modforge Module Viewer"),
            html.P(f"Project: {project.root_dir}"),
            html.P(f"{len(modules)} compiled modules, {len(project.page_modules)} pages"),
            html.Hr(),
            html.Table(
                [
                    html.Thead(
                        html.Tr([html.Th("Module"), html.Th("Kind"), html.Th("Fingerprint"), html.Th("Dependencies")])
                    ),
                    html.Tbody(rows),
                ],
                id="module-table",
            ),
        ],
        style={"fontFamily": "sans-serif", "padding": "2rem"},
    )
