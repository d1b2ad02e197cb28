import os
import signal

import psutil

import util
from render import PID_FILE, INT_MAP_FILE, render_int_map
from util import ExternalCommandError


UACCTD = '/usr/sbin/uacctd'


class Daemon(object):
	"""
	uacctd process control through its pid file
	"""
	def __init__(self, binary=UACCTD, pid_file=PID_FILE, runner=util.run_cmd):
		self.binary   = binary
		self.pid_file = pid_file
		self.runner   = runner

	def get_pid(self):
		try:
			with open(self.pid_file) as f:
				return int(f.read().strip())
		except (OSError, ValueError):
			return None

	def get_process(self):
		pid = self.get_pid()
		if pid is None or not psutil.pid_exists(pid):
			return None
		#a stale pid file may name an unrelated process
		try:
			proc = psutil.Process(pid)
			if proc.name() != os.path.basename(self.binary):
				return None
		except psutil.NoSuchProcess:
			return None
		return proc

	def is_running(self):
		return self.get_process() is not None

	def start(self, conf_file):
		cmd = [self.binary, '-f', conf_file]
		code, _ = self.runner(cmd)
		if code != 0:
			raise ExternalCommandError(cmd, code)

	def stop(self):
		proc = self.get_process()
		if proc is None:
			return
		try:
			proc.terminate()
			proc.wait()
		except psutil.NoSuchProcess:
			#exited on its own
			pass

	def restart(self, conf_file):
		self.stop()
		self.start(conf_file)

	def reload(self):
		"""
		SIGUSR2 makes uacctd re-read its maps without losing flow state
		"""
		name = os.path.basename(self.binary)
		for proc in psutil.process_iter(['name']):
			if proc.info['name'] == name:
				try:
					proc.send_signal(signal.SIGUSR2)
				except psutil.NoSuchProcess:
					pass


class LifecycleController(object):
	"""
	Reconcile the on-disk uacctd configuration with the current snapshot.

	The daemon is restarted only when its configuration text changed; a
	changed interface map alone is picked up with a reload signal.
	"""
	def __init__(self, daemon, conf_file, int_map_file=INT_MAP_FILE, get_ifindex=util.get_ifindex):
		self.daemon       = daemon
		self.conf_file    = conf_file
		self.int_map_file = int_map_file
		self.get_ifindex  = get_ifindex

	def disable(self):
		util.acct_log('stop')
		self.daemon.stop()
		if os.path.exists(self.conf_file):
			os.remove(self.conf_file)
		return 'disabled'

	def update(self, interfaces, render):
		"""
		render is called with no arguments and returns the configuration
		text; returns the action taken
		"""
		if not interfaces:
			return self.disable()

		map_changed = util.write_file(self.int_map_file, render_int_map(interfaces, self.get_ifindex))
		conf = render()
		if util.write_file(self.conf_file, conf):
			util.acct_log('conf file written')
			self.daemon.restart(self.conf_file)
			return 'restarted'

		#after a reboot the file already matches but the daemon is down
		if not self.daemon.is_running():
			self.daemon.start(self.conf_file)
			return 'started'
		if map_changed:
			util.acct_log('signal reread mapping')
			self.daemon.reload()
			return 'reloaded'
		return 'unchanged'
