"""respbsa command-line application."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from respbsa import config
from respbsa.errors import RespbsaError
from respbsa.logging_config import configure_logging
from respbsa.model.model import Model
from respbsa.services.apbs import ApbsClient
from respbsa.services.gmx import dump_topology
from respbsa.services.index import GroupIndex
from respbsa.services.report import residues_near_ligand, write_reports
from respbsa.services.trajectory import iter_frames, load_universe
from respbsa.worker import Worker

logger = logging.getLogger(__name__)

_DEFAULTS = config.Settings()


def _parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog=config.APP_NAME,
        description="Per-residue MM-PBSA binding energy decomposition for GROMACS trajectories",
    )
    parser.add_argument("tpr_path", help="GROMACS run input file (.tpr)")
    parser.add_argument("-f", dest="trj_path", default=None, help="Trajectory (.xtc/.trr)")
    parser.add_argument("-n", dest="ndx_path", default=None, help="Index file (.ndx)")
    parser.add_argument("--receptor", default=None, help="Receptor group (number or name)")
    parser.add_argument("--ligand", default=None, help="Ligand group (number or name)")
    parser.add_argument("--list-groups", action="store_true", help="List index groups and exit")
    parser.add_argument("--bt", type=float, default=None, help="First frame time (ps)")
    parser.add_argument("--et", type=float, default=None, help="Last frame time (ps)")
    parser.add_argument("--dt", type=float, default=None, help="Frame time step (ps)")
    parser.add_argument(
        "--name", default=config.DEFAULT_SYSTEM_NAME, help="System name used in file names"
    )
    parser.add_argument(
        "--dump", default=None, help="Existing 'gmx dump -s' output; skips running gmx"
    )
    parser.add_argument("--out-dir", default=".", help="Output directory")
    parser.add_argument(
        "--temperature",
        type=float,
        default=_DEFAULTS.temperature,
        help="Temperature (K)",
    )
    parser.add_argument(
        "--radius-policy",
        choices=config.RADIUS_POLICIES,
        default=_DEFAULTS.radius_policy,
        help="Atomic radius source",
    )
    parser.add_argument(
        "--mesh-policy",
        choices=config.MESH_POLICIES,
        default=_DEFAULTS.mesh.policy,
        help="Grid sizing policy",
    )
    parser.add_argument(
        "--mesh-box",
        choices=config.MESH_BOX_MODES,
        default=_DEFAULTS.mesh.box,
        help="Size sub-system grids from their own atoms or from the complex",
    )
    parser.add_argument("--cfac", type=float, default=_DEFAULTS.mesh.cfac)
    parser.add_argument("--fadd", type=float, default=_DEFAULTS.mesh.fadd)
    parser.add_argument("--df", type=float, default=_DEFAULTS.mesh.df)
    parser.add_argument("--pdie", type=float, default=_DEFAULTS.pb.pdie)
    parser.add_argument("--sdie", type=float, default=_DEFAULTS.pb.sdie)
    parser.add_argument(
        "--cutoff", type=float, default=None, help="MM pair cutoff (nm); unbounded by default"
    )
    parser.add_argument(
        "--no-debye-huckel", action="store_true", help="Disable Coulomb screening"
    )
    parser.add_argument("--no-entropy", action="store_true", help="Report TdS = 0")
    parser.add_argument("--apbs", default="apbs", help="APBS executable")
    parser.add_argument(
        "--no-pbsa", action="store_true", help="Skip the solver (MM terms only)"
    )
    parser.add_argument("--gmx", default="gmx", help="GROMACS executable")
    parser.add_argument("--jobs", type=int, default=1, help="Frames computed concurrently")
    parser.add_argument(
        "--no-preserve", action="store_true", help="Delete per-frame solver files"
    )
    parser.add_argument(
        "--res-cutoff",
        type=float,
        default=None,
        help="Only report residues within this distance (A) of the ligand",
    )
    parser.add_argument(
        "--log-file",
        dest="log_file",
        default=None,
        help="Write logs to this file instead of stdout",
    )
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    args = parser.parse_args(argv[1:])
    if args.list_groups:
        if not args.ndx_path:
            parser.error("--list-groups requires -n")
        return args
    missing = [
        flag
        for flag, value in (
            ("-f", args.trj_path),
            ("-n", args.ndx_path),
            ("--receptor", args.receptor),
            ("--ligand", args.ligand),
        )
        if value is None
    ]
    if missing:
        parser.error(f"missing required arguments: {', '.join(missing)}")
    if args.jobs < 1:
        parser.error("--jobs must be at least 1")
    if args.df <= 0:
        parser.error("--df must be positive")
    if args.cfac <= 0:
        parser.error("--cfac must be positive")
    if args.fadd < 0:
        parser.error("--fadd must not be negative")
    return args


def build_settings(args: argparse.Namespace) -> config.Settings:
    """Translate parsed flags into immutable run settings."""

    return config.Settings(
        temperature=args.temperature,
        radius_policy=args.radius_policy,
        use_debye_huckel=not args.no_debye_huckel,
        use_entropy=not args.no_entropy,
        cutoff=float("inf") if args.cutoff is None else args.cutoff,
        apbs=None if args.no_pbsa else args.apbs,
        gmx=args.gmx,
        jobs=args.jobs,
        preserve=not args.no_preserve,
        pb=config.PBSettings(pdie=args.pdie, sdie=args.sdie),
        mesh=config.MeshSettings(
            policy=args.mesh_policy,
            box=args.mesh_box,
            cfac=args.cfac,
            fadd=args.fadd,
            df=args.df,
        ),
    )


def _log_summary(summary) -> None:
    averages = summary.averages
    logger.info("Frames: %d", summary.n_frames)
    logger.info("dH: %.3f kJ/mol", averages["dh"])
    logger.info(
        "dMM: %.3f kJ/mol (elec %.3f, vdW %.3f)",
        averages["mm"],
        averages["coulomb"],
        averages["vdw"],
    )
    logger.info("dPB: %.3f kJ/mol", averages["pb"])
    logger.info("dSA: %.3f kJ/mol", averages["sa"])
    logger.info("TdS: %.3f kJ/mol", summary.tds)
    logger.info("dG: %.3f kJ/mol", summary.dg)
    logger.info("Ki: %.3e", summary.ki)


def run(args: argparse.Namespace) -> int:
    """Execute one MM-PBSA run from parsed flags.

    Returns
    -------
    int
        Process exit status.
    """

    index = GroupIndex.from_file(args.ndx_path)
    if args.list_groups:
        for number, name, size in index.list_groups():
            print(f"{number:4d} {name:<24s} {size:8d} atoms")
        return 0

    settings = build_settings(args)
    out_dir = Path(args.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    if args.dump:
        dump_path = Path(args.dump)
    else:
        dump_path = dump_topology(
            args.tpr_path, str(out_dir / config.DUMP_FILENAME), settings.gmx
        )

    receptor = index.get(args.receptor)
    ligand = index.get(args.ligand)
    solver = ApbsClient(settings.apbs) if settings.apbs else None

    worker = Worker(max_workers=settings.jobs) if settings.jobs > 1 else None
    try:
        model = Model(settings, solver=solver, submit=worker.submit if worker else None)
        params = model.prepare(str(dump_path), receptor, ligand, str(out_dir), args.name)
        universe = load_universe(args.tpr_path, args.trj_path)
        summary = model.run(iter_frames(universe, args.bt, args.et, args.dt))
    finally:
        if worker is not None:
            worker.shutdown()

    _log_summary(summary)
    residues = None
    if args.res_cutoff is not None and model.last_coords is not None:
        residues = residues_near_ligand(
            params, model.last_coords, args.res_cutoff / config.NM_TO_ANGSTROM
        )
        logger.info(
            "Reporting %d residues within %.2f A of the ligand", len(residues), args.res_cutoff
        )
    write_reports(summary, params, str(out_dir), args.name, residues, model.last_coords)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Run the respbsa application.

    Returns
    -------
    int
        Process exit status (1 on any respbsa error).
    """

    args = _parse_args(list(sys.argv if argv is None else argv))
    configure_logging(args.log_file, args.verbose)
    logger.debug("Starting %s", config.APP_NAME)
    try:
        return run(args)
    except RespbsaError as exc:
        logger.error("%s failed: %s", config.APP_NAME, exc.to_dict())
        return 1
    except OSError as exc:
        logger.error("%s failed: %s", config.APP_NAME, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
