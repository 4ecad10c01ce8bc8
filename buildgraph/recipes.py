"""
The static-site task set: styles, templates, scripts, images and fonts compiled
into `.tmp` for the live preview and into `dist` for deployment.
"""

import logging
import shutil
from typing import TYPE_CHECKING

import anyio
from pydantic import BaseModel, ConfigDict

from .deploy import deploy, load_credentials
from .pipeline import FilePipeline
from .stages import (
    AutoprefixerOptions,
    CommandStage,
    FaviconOptions,
    FaviconStage,
    HtmlMinifierOptions,
    ImageOptimizerOptions,
    LintOptions,
    LintStage,
    PolyfillOptions,
    SassOptions,
    TemplateOptions,
    concat,
    when,
)

if TYPE_CHECKING:  # pragma: no cover
    from .scheduler import Scheduler

logger = logging.getLogger(__name__)

DEFAULT_BROWSERS = (
    "> 1%",
    "last 10 versions",
    "Chrome > 0",
    "Firefox > 0",
    "Explorer > 0",
    "Opera > 0",
    "Safari > 0",
)


class SiteAssets(BaseModel):
    """Third-party assets to concatenate or copy, and the browsers to support."""

    concat_js: tuple[str, ...] = (
        "bower_components/jquery/dist/jquery.js",
        "bower_components/bxslider-4/dist/jquery.bxslider.js",
        "bower_components/gsap/src/uncompressed/TweenMax.js",
        "bower_components/enquire/dist/enquire.js",
        "bower_components/vex/js/vex.js",
        "bower_components/vex/js/vex.dialog.js",
    )
    concat_css: tuple[str, ...] = (
        "bower_components/font-awesome/css/font-awesome.css",
    )
    copy_js: tuple[str, ...] = ("bower_components/modernizr/modernizr.js",)
    copy_fonts: tuple[str, ...] = ("bower_components/font-awesome/fonts/*",)
    browsers: tuple[str, ...] = DEFAULT_BROWSERS
    favicon_picture: str = "images/logo.svg"
    """Master picture for the icon set, relative to the source directory."""
    app_name: str = "Website"

    model_config = ConfigDict(extra="forbid", frozen=True)


def chain(*pipelines: FilePipeline):
    """An action running several pipelines one after the other."""

    async def _chain() -> None:
        for pipeline in pipelines:
            async for _ in pipeline():
                await anyio.lowlevel.checkpoint()

    return _chain


def define_site_tasks(scheduler: "Scheduler", assets: SiteAssets | None = None) -> None:
    assets = assets or SiteAssets()
    registry = scheduler.registry
    config = scheduler.config
    hub = scheduler.reload

    app, tmp, dist = config.source_dir, config.tmp_dir, config.dist_dir

    def pipeline(source, stages=(), dest=None, **kwargs) -> FilePipeline:
        return FilePipeline(source, stages, dest, cwd=config.root, **kwargs)

    def clean() -> None:
        for directory in (tmp, dist):
            shutil.rmtree(config.path(directory), ignore_errors=True)

    registry.define(
        "clean", action=clean, threaded=True, description=f"Remove {tmp} and {dist}."
    )

    registry.define(
        "styles",
        action=pipeline(
            f"{app}/styles/*.scss",
            [
                CommandStage(SassOptions(include_paths=(".",))),
                CommandStage(AutoprefixerOptions(browsers=assets.browsers)),
            ],
            f"{tmp}/styles",
            reload=hub,
        ),
    )

    def lint(patterns, options: LintOptions) -> FilePipeline:
        # a live preview session tolerates lint errors, a batch build does not
        return pipeline(
            patterns,
            [
                LintStage(options, tolerant=lambda: hub.active),
            ],
            reload=hub,
            reload_once=True,
        )

    registry.define(
        "lint",
        action=lint(
            [f"{app}/scripts/**/*.js", f"!{app}/scripts/polyfills-generated.js"],
            LintOptions(),
        ),
    )
    registry.define(
        "lint:test", action=lint("test/spec/**/*.js", LintOptions(env=("mocha",)))
    )

    registry.define(
        "templates",
        action=pipeline(
            f"{app}/jade/pages/*.jade",
            [CommandStage(TemplateOptions(pretty=True, basedir=f"{app}/jade"))],
            tmp,
        ),
    )

    registry.define(
        "favicon",
        ["templates"],
        pipeline(
            f"{tmp}/*.html",
            [
                FaviconStage(
                    FaviconOptions(
                        master_picture=f"{app}/{assets.favicon_picture}",
                        app_name=assets.app_name,
                        dest=f"{tmp}/favicon",
                        description_file=f"{tmp}/faviconDescription.json",
                    ),
                    cwd=config.root,
                )
            ],
            tmp,
        ),
        description="Generate the icon set and link it from the pages.",
    )

    registry.define(
        "html",
        ["templates", "styles"],
        pipeline(
            f"{tmp}/*.html",
            [when("*.html", CommandStage(HtmlMinifierOptions()))],
            dist,
        ),
    )

    registry.define(
        "images",
        action=pipeline(
            f"{app}/images/**/*",
            [CommandStage(ImageOptimizerOptions())],
            f"{dist}/images",
        ),
    )

    registry.define(
        "fonts",
        action=pipeline(
            [
                *assets.copy_fonts,
                f"{app}/fonts/**/*",
            ],
            dest=[f"{tmp}/fonts", f"{dist}/fonts"],
        ),
    )

    registry.define(
        "extras", action=pipeline([f"{app}/*.*", f"!{app}/*.html"], dest=dist)
    )

    registry.define(
        "polyfill",
        action=pipeline(
            [f"{app}/scripts/*.js", f"!{app}/scripts/polyfills-generated.js"],
            [CommandStage(PolyfillOptions(browsers=assets.browsers))],
            f"{app}/scripts",
            expect_files=True,
        ),
    )

    registry.define("serve-pre", ["templates", "styles", "fonts", "polyfill"])

    def vendor_concat(target: str) -> list[FilePipeline]:
        return [
            pipeline(
                assets.concat_js, [concat("vendor-concat.js")], f"{target}/scripts"
            ),
            pipeline(
                assets.concat_css, [concat("vendor-concat.css")], f"{target}/styles"
            ),
        ]

    registry.define("concat:serve", ["serve-pre"], chain(*vendor_concat(tmp)))
    registry.define("concat:dist", ["serve-pre"], chain(*vendor_concat(dist)))

    registry.define(
        "copy:serve",
        ["serve-pre"],
        chain(
            pipeline(assets.copy_js, dest=f"{tmp}/scripts"),
            pipeline(assets.copy_fonts, dest=f"{tmp}/fonts"),
            pipeline(f"{tmp}/favicon/*", dest=tmp),
        ),
    )
    registry.define(
        "copy:dist",
        ["serve-pre"],
        chain(
            pipeline(assets.copy_js, dest=f"{dist}/scripts"),
            pipeline(assets.copy_fonts, dest=f"{dist}/fonts"),
            pipeline([f"{app}/scripts/*.js"], dest=f"{dist}/scripts"),
            pipeline(
                [f"{tmp}/styles/*.*", f"!{tmp}/styles/vendor-concat.css"],
                dest=f"{dist}/styles",
            ),
            pipeline(f"{tmp}/favicon/*", dest=dist),
            pipeline(f"{app}/content/**", dest=f"{dist}/content"),
        ),
    )

    def reload(paths: list[str]) -> None:
        hub.notify(paths)

    def serve() -> None:
        logger.info("Serving %s and %s", tmp, app)

    registry.define("serve", ["serve-pre", "concat:serve", "copy:serve"], serve)
    scheduler.watch(
        [
            f"{tmp}/*.html",
            f"{app}/scripts/**/*.js",
            f"{app}/images/**/*",
            f"{tmp}/fonts/**/*",
        ],
        reload,
        session="serve",
    )
    scheduler.watch(f"{app}/jade/**/*.jade", "templates", session="serve")
    scheduler.watch(f"{app}/styles/**/*.scss", "styles", session="serve")
    scheduler.watch(f"{app}/fonts/**/*", "fonts", session="serve")
    scheduler.watch(f"{app}/scripts/**/*.js", "lint", session="serve")

    def serve_dist() -> None:
        logger.info("Serving %s", dist)

    registry.define("serve:dist", action=serve_dist)

    def serve_test() -> None:
        logger.info("Serving test")

    registry.define("serve:test", action=serve_test)
    scheduler.watch("test/spec/**/*.js", reload, session="serve:test")
    scheduler.watch("test/spec/**/*.js", "lint:test", session="serve:test")

    def build() -> None:
        files = [p for p in config.path(dist).rglob("*") if p.is_file()]
        size = sum(p.stat().st_size for p in files)
        logger.info("build: %d file(s), %d bytes in %s", len(files), size, dist)

    registry.define(
        "build",
        [
            "lint",
            "html",
            "styles",
            "polyfill",
            "concat:dist",
            "copy:dist",
            "images",
            "fonts",
            "extras",
        ],
        build,
    )

    async def default() -> None:
        # `build` must only start once `clean` has finished
        await scheduler.run("build")

    registry.define("default", ["clean"], default)

    async def deploy_dist() -> None:
        credentials = load_credentials(config.path(config.credentials_file))
        await deploy(
            f"{dist}/**",
            config.remote_root,
            credentials,
            cwd=config.root,
            base=dist,
            parallel=config.transfer_parallel,
        )

    registry.define("deploy", action=deploy_dist)
