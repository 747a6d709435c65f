#!/usr/bin/env python3
"""
mgdeploy CLI entry point.

Build or launch the SenseursPassifs service container with a fully resolved
runtime environment.
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Optional

from .cli_utils import get_cli_version
from .config_constants import ENV_LOG_LEVEL, PROFILE_ALIASES
from .engine import configure_logging, main_execution
from .variants import VARIANTS


def parse_arguments(argv: Optional[list] = None) -> argparse.Namespace:
    """
    Parse command-line arguments for mgdeploy.

    Actions (one per invocation, default follows the variant):
    1. --run - Launch the service container (direct-run)
    2. --build - Build the service image (build variants)
    3. --render-dockerfile - Render the Dockerfile without building
    4. --init-identity - Persist a new instance identity and exit

    Options:
    - --variant / --profile select the deployment shape and its defaults
    - --image, --repo, --name, --arch, --version feed the Image Selector
    - --cert-folder, --identity-file locate secrets and identity
    - --dry-run, --print-context, --render-toml for inspection
    """
    parser = argparse.ArgumentParser(
        description='mgdeploy: SenseursPassifs container build and launch',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  # Launch against a developer host with local certificates
  MG_MQ_HOST=mg-dev4.example.com MG_MONGO_HOST=mg-dev4.example.com %(prog)s --run

  # Pin the image version
  %(prog)s --run --version 1.29.3

  # Build the cluster image with a declared archive volume
  %(prog)s --variant build-with-volume --build

  # Inspect the resolved environment without starting anything
  %(prog)s --dry-run --print-context
        '''
    )

    actions = parser.add_mutually_exclusive_group()
    actions.add_argument('--run', dest='action', action='store_const', const='run',
                         help='Launch the service container')
    actions.add_argument('--build', dest='action', action='store_const', const='build',
                         help='Build the service image')
    actions.add_argument('--render-dockerfile', dest='action', action='store_const',
                         const='render-dockerfile',
                         help='Render the Dockerfile for a build variant and exit')
    actions.add_argument('--init-identity', dest='action', action='store_const',
                         const='init-identity',
                         help='Persist a new instance identity and exit')

    parser.add_argument(
        '-d', '--dir',
        type=Path,
        default=Path.cwd(),
        metavar='PATH',
        help='Working directory holding image_info.txt and mgdeploy.toml (default: current directory)'
    )
    parser.add_argument('--variant', choices=list(VARIANTS), default=None,
                        help='Deployment variant (default: launch.variant or direct-run)')
    parser.add_argument('--profile', choices=sorted(PROFILE_ALIASES), default=None,
                        help='Configuration profile (default: variant default)')

    parser.add_argument('--image', default=None, metavar='REF',
                        help='Full image reference override (must carry a tag)')
    parser.add_argument('--repo', default=None, help='Image repository')
    parser.add_argument('--name', default=None, help='Application name')
    parser.add_argument('--arch', default=None, help='CPU architecture tag (default: uname -m)')
    parser.add_argument('--version', dest='image_version', default=None,
                        help='Image version override (default: VERSION from image_info.txt)')

    parser.add_argument('--cert-folder', type=Path, default=None, metavar='PATH',
                        help='Host secrets directory mounted read-only (direct-run)')
    parser.add_argument('--identity-file', type=Path, default=None, metavar='PATH',
                        help='Persisted instance identity file')

    parser.add_argument('--compile', action='store_true',
                        help='Compile the release binary before building')
    parser.add_argument('--no-cache', action='store_true',
                        help='Build without the Docker layer cache')
    parser.add_argument('--no-tty', action='store_true',
                        help='Run without -it (non-interactive)')
    parser.add_argument('--force', action='store_true',
                        help='Replace an existing identity (--init-identity) or a Dockerfile not generated by mgdeploy')

    parser.add_argument('--dry-run', action='store_true',
                        help='Resolve and print the command without starting docker')
    parser.add_argument('--print-context', action='store_true',
                        help='Print the resolved context as JSON')
    parser.add_argument('--render-toml', type=Path, default=None, metavar='PATH',
                        help='Write the resolved context as TOML')
    parser.add_argument('--log-level', default=os.environ.get(ENV_LOG_LEVEL, 'INFO'),
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='mgdeploy log level (default: INFO)')
    parser.add_argument('-V', '--cli-version', action='version',
                        version=f"mgdeploy {get_cli_version()}")

    return parser.parse_args(argv)


def main(argv: Optional[list] = None) -> int:
    args = parse_arguments(argv)
    configure_logging(args.log_level)

    result = main_execution(
        working_dir=args.dir,
        variant_name=args.variant,
        profile=args.profile,
        action=args.action,
        dry_run=args.dry_run,
        print_context=args.print_context,
        render_toml=args.render_toml,
        cert_folder=args.cert_folder,
        identity_file=args.identity_file,
        repository=args.repo,
        application_name=args.name,
        architecture=args.arch,
        version=args.image_version,
        image_override=args.image,
        compile_first=args.compile,
        use_cache=not args.no_cache,
        interactive=not args.no_tty,
        force=args.force,
    )

    if result.get('status') == 'success':
        return 0
    if result.get('status') == 'interrupted':
        return 130
    return 1


if __name__ == '__main__':
    sys.exit(main())
