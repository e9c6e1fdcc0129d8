"""User configuration: prlctl binary, workflow timing, batch width, and key search paths."""

from __future__ import annotations

import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path

import ubelt as ub

from .gateway import MAX_OUTPUT_BYTES, PRLCTL, Executor, make_executor
from .util import expand

DEFAULT_KEY_PATHS = [
    '~/.ssh/id_rsa.pub',
    '~/.ssh/id_ed25519.pub',
    '~/.ssh/id_ecdsa.pub',
]


@dataclass
class PrlctlConfig:
    binary: str = PRLCTL
    max_output_bytes: int = MAX_OUTPUT_BYTES


@dataclass
class WorkflowConfig:
    settle_delay_s: int = 5
    admin_group: str = 'sudo'


@dataclass
class BatchConfig:
    # 0 runs every target at once; a positive value caps the thread pool.
    max_workers: int = 0


@dataclass
class SSHConfig:
    key_paths: list[str] = field(
        default_factory=lambda: list(DEFAULT_KEY_PATHS)
    )


@dataclass
class PrlVMConfig:
    prlctl: PrlctlConfig = field(default_factory=PrlctlConfig)
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    ssh: SSHConfig = field(default_factory=SSHConfig)
    verbosity: int = 1

    def expanded_paths(self) -> 'PrlVMConfig':
        self.ssh.key_paths = [expand(p) for p in self.ssh.key_paths]
        if '/' in self.prlctl.binary:
            self.prlctl.binary = expand(self.prlctl.binary)
        return self

    def executor(self) -> Executor:
        return make_executor(
            self.prlctl.binary, max_output_bytes=self.prlctl.max_output_bytes
        )


SECTIONS = ('prlctl', 'workflow', 'batch', 'ssh')


def default_config_path() -> Path:
    appdir = ub.Path.appdir('prlvm', type='config')
    return Path(appdir) / 'config.toml'


def _toml_escape(s: str) -> str:
    return s.replace('\\', '\\\\').replace('"', '\\"')


def dump_toml(cfg: PrlVMConfig) -> str:
    d = asdict(cfg)
    lines: list[str] = [f'verbosity = {d.pop("verbosity")}', '']
    for section, body in d.items():
        if isinstance(body, dict):
            lines.append(f'[{section}]')
            for k, v in body.items():
                if isinstance(v, bool):
                    lines.append(f'{k} = {"true" if v else "false"}')
                elif isinstance(v, int):
                    lines.append(f'{k} = {v}')
                elif isinstance(v, list):
                    parts = [f'"{_toml_escape(str(item))}"' for item in v]
                    lines.append(f'{k} = [{", ".join(parts)}]')
                else:
                    lines.append(f'{k} = "{_toml_escape(str(v))}"')
            lines.append('')
    return '\n'.join(lines).rstrip() + '\n'


def load(path: Path) -> PrlVMConfig:
    raw = tomllib.loads(path.read_text(encoding='utf-8'))
    cfg = PrlVMConfig()
    for section in SECTIONS:
        body = raw.get(section, None)
        if isinstance(body, dict):
            obj = getattr(cfg, section)
            for k, v in body.items():
                if hasattr(obj, k):
                    setattr(obj, k, v)
    if 'verbosity' in raw:
        cfg.verbosity = int(raw['verbosity'])
    return cfg


def load_or_default(path: Path | None = None) -> PrlVMConfig:
    fpath = path or default_config_path()
    if not fpath.exists():
        return PrlVMConfig().expanded_paths()
    return load(fpath).expanded_paths()


def save(path: Path, cfg: PrlVMConfig) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_toml(cfg), encoding='utf-8')
