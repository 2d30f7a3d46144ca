import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch


CONFIG_YAML = """
doorman:
  rundir: {rundir}
  datadir: {datadir}
  sysops: [jordan]
container:
  engine_path: /usr/bin/podman
  rootless_podman: true
doors:
  lord:
    door_path: /srv/doors/lord
    max_nodes: 2
    launch_commands: "LORD.EXE /N{{{{ node }}}}"
    nightly_commands: "LORD.EXE /EVENT"
    some_future_option: ignored
  tw2002:
    door_path: /srv/doors/tw2002
    launch_commands: TW2002.EXE
"""


def _alice():
    from doorman.contracts.v1 import User

    return User(uid=1000, username="alice", display_name="Alice")


class TestLoadConfig(unittest.TestCase):
    def _write(self, td: str, text: str) -> Path:
        path = Path(td) / "doorman.yml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_load(self) -> None:
        from doorman.kernel import config as config_mod
        from doorman.runners.engine import PodmanEngine

        with tempfile.TemporaryDirectory() as td:
            rundir = Path(td) / "run"
            datadir = Path(td) / "data"
            path = self._write(td, CONFIG_YAML.format(rundir=rundir, datadir=datadir))
            with patch.object(config_mod, "detect_engine") as detect:
                detect.return_value = PodmanEngine(Path("/usr/bin/podman"), rundir=rundir, rootless=True)
                config = config_mod.load_config(_alice(), path=path)

            detect.assert_called_once_with(rundir=rundir, engine_path=Path("/usr/bin/podman"), rootless_podman=True)
            self.assertTrue(rundir.is_dir())
            self.assertTrue(datadir.is_dir())
            self.assertEqual(config.dosemu_image, "ghcr.io/jordemort/doorman-dosemu:main")
            self.assertEqual(config.sysops, ["jordan"])

            lord = config.get_door("lord")
            self.assertEqual(lord.options.max_nodes, 2)
            self.assertEqual(lord.options.launch_commands, "LORD.EXE /N{{ node }}")
            self.assertIsNone(lord.options.configure_commands)
            self.assertEqual(config.get_door("tw2002").options.max_nodes, 1)

    def test_unknown_door(self) -> None:
        from doorman.errors import ConfigurationError
        from doorman.kernel import config as config_mod

        with tempfile.TemporaryDirectory() as td:
            path = self._write(td, CONFIG_YAML.format(rundir=Path(td) / "run", datadir=Path(td) / "data"))
            with patch.object(config_mod, "detect_engine"):
                config = config_mod.load_config(_alice(), path=path)
            with self.assertRaises(ConfigurationError) as ctx:
                config.get_door("usurper")
            self.assertEqual(str(ctx.exception), "Unknown door 'usurper'")

    def test_missing_and_invalid_files(self) -> None:
        from doorman.errors import ConfigurationError
        from doorman.kernel.config import read_config_file

        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ConfigurationError):
                read_config_file(Path(td) / "missing.yml")
            with self.assertRaises(ConfigurationError):
                read_config_file(self._write(td, "doors: [unclosed"))
            with self.assertRaises(ConfigurationError):
                read_config_file(self._write(td, "doors:\n  lord:\n    door_path: /x\n    launch_commands: X\n    max_nodes: 0\n"))
            with self.assertRaises(ConfigurationError):
                read_config_file(self._write(td, "doors:\n  lord:\n    door_path: /x\n"))

    def test_config_path_resolution(self) -> None:
        from doorman.paths import config_path

        with patch.dict(os.environ, {"DOORMAN_CONFIG": "/etc/doorman.yml", "XDG_CONFIG_HOME": "/xdg"}):
            self.assertEqual(config_path(), Path("/etc/doorman.yml"))
            self.assertEqual(config_path(Path("/tmp/x.yml")), Path("/tmp/x.yml"))
        with patch.dict(os.environ, {"DOORMAN_CONFIG": "", "XDG_CONFIG_HOME": "/xdg"}):
            self.assertEqual(config_path(), Path("/xdg/doorman/doorman.yml"))

    def test_default_rundir(self) -> None:
        from doorman.paths import default_rundir

        with patch.dict(os.environ, {"XDG_RUNTIME_DIR": "/run/user/1000"}):
            self.assertEqual(default_rundir(Path("/data")), Path("/run/user/1000/doorman"))
        with patch.dict(os.environ, {"XDG_RUNTIME_DIR": ""}):
            self.assertEqual(default_rundir(Path("/data")), Path("/data/run"))


class TestSwitchUser(unittest.TestCase):
    def test_non_sysop_cannot_switch(self) -> None:
        from doorman.errors import PermissionDeniedError
        from doorman.kernel.identity import switch_user

        with self.assertRaises(PermissionDeniedError):
            switch_user(_alice(), sysop=False, username="bob")

    def test_uid_and_username_are_taken_verbatim(self) -> None:
        from doorman.kernel.identity import switch_user

        target = switch_user(_alice(), sysop=True, username="guest", uid=4242)
        self.assertEqual((target.uid, target.username, target.display_name), (4242, "guest", "guest"))

        named = switch_user(_alice(), sysop=True, username="guest", uid=4242, display_name="Guest User")
        self.assertEqual(named.display_name, "Guest User")

    def test_display_name_only(self) -> None:
        from doorman.kernel.identity import switch_user

        target = switch_user(_alice(), sysop=True, display_name="The Dark Cloak")
        self.assertEqual((target.uid, target.username, target.display_name), (1000, "alice", "The Dark Cloak"))

    def test_lookup_by_uid_and_username(self) -> None:
        import pwd

        from doorman.kernel import identity

        pwent = pwd.struct_passwd(("bob", "x", 1001, 1001, "Bob Smith,,,", "/home/bob", "/bin/sh"))
        with patch.object(identity.pwd, "getpwuid", return_value=pwent):
            by_uid = identity.switch_user(_alice(), sysop=True, uid=1001)
        self.assertEqual((by_uid.uid, by_uid.username, by_uid.display_name), (1001, "bob", "Bob Smith"))

        with patch.object(identity.pwd, "getpwnam", return_value=pwent):
            by_name = identity.switch_user(_alice(), sysop=True, username="bob")
        self.assertEqual((by_name.uid, by_name.display_name), (1001, "Bob Smith"))

    def test_unknown_user(self) -> None:
        from doorman.errors import IdentityError
        from doorman.kernel import identity

        with patch.object(identity.pwd, "getpwnam", side_effect=KeyError("nobody-here")):
            with self.assertRaises(IdentityError):
                identity.switch_user(_alice(), sysop=True, username="nobody-here")

    def test_empty_gecos_falls_back_to_username(self) -> None:
        import pwd

        from doorman.kernel import identity

        pwent = pwd.struct_passwd(("svc", "x", 999, 999, "", "/", "/bin/false"))
        with patch.object(identity.pwd, "getpwuid", return_value=pwent):
            self.assertEqual(identity.user_from_uid(999).display_name, "svc")


class TestDropPrivileges(unittest.TestCase):
    def test_setuid_switches_to_service_account(self) -> None:
        import pwd

        from doorman.kernel import privileges

        pwent = pwd.struct_passwd(("doorman", "x", 2000, 2000, "", "/var/lib/doorman", "/bin/false"))
        env = {"XDG_RUNTIME_DIR": "/run/user/1000", "USER": "alice", "HOME": "/home/alice"}
        with patch.dict(os.environ, env), patch.object(privileges.os, "getuid", return_value=1000), patch.object(
            privileges.os, "geteuid", return_value=2000
        ), patch.object(privileges.os, "getgid", return_value=100), patch.object(
            privileges.os, "getegid", return_value=100
        ), patch.object(privileges.os, "setresuid") as setresuid, patch.object(
            privileges.os, "setresgid"
        ) as setresgid, patch.object(privileges.pwd, "getpwuid", return_value=pwent):
            privileges.drop_privileges()
            self.assertEqual(os.environ["USER"], "doorman")
            self.assertEqual(os.environ["HOME"], "/var/lib/doorman")
            self.assertNotIn("XDG_RUNTIME_DIR", os.environ)

        setresuid.assert_called_once_with(2000, 2000, 1000)
        setresgid.assert_not_called()

    def test_failed_switch_is_an_identity_error(self) -> None:
        from doorman.errors import IdentityError
        from doorman.kernel import privileges

        with patch.object(privileges.os, "getuid", return_value=1000), patch.object(
            privileges.os, "geteuid", return_value=2000
        ), patch.object(privileges.os, "setresuid", side_effect=PermissionError("nope")):
            with self.assertRaises(IdentityError):
                privileges.drop_privileges()


if __name__ == "__main__":
    unittest.main()
