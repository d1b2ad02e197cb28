import logging
import os
import ipaddress
from subprocess import PIPE, Popen

import netifaces


ACCT_LOGGER = 'flow-accounting'
SYS_CLASS_NET = '/sys/class/net'


class AccountingError(Exception):
	"""
	base class for every fatal flow-accounting error
	"""
	pass

class ConfigError(AccountingError):
	pass

class ExternalCommandError(AccountingError):
	"""
	an external program (iptables, uacctd) exited non-zero
	"""
	def __init__(self, cmd, code, msg=''):
		self.cmd  = cmd
		self.code = code
		text = "[%s] failed - %d" % (' '.join(cmd), code)
		if msg:
			text += ': ' + msg
		super(ExternalCommandError, self).__init__(text)


def run_cmd(cmd):
	"""
	run an external command, return (exit code, stdout)
	"""
	try:
		p = Popen(cmd, stdin=PIPE, stdout=PIPE, stderr=PIPE, universal_newlines=True)
	except OSError as e:
		raise ExternalCommandError(cmd, 127, str(e))
	out, _ = p.communicate()
	return (p.returncode, out)


def init_acct_log(path):
	logger = logging.getLogger(ACCT_LOGGER)
	logger.setLevel(logging.INFO)
	for h in list(logger.handlers):
		logger.removeHandler(h)
		h.close()
	#opened on first record, so actions that never log never touch the file
	handler = logging.FileHandler(path, delay=True)
	handler.setFormatter(logging.Formatter('%(asctime)s: %(message)s'))
	logger.addHandler(handler)
	return logger


def acct_log(msg):
	logging.getLogger(ACCT_LOGGER).info(msg)


def get_interfaces():
	return netifaces.interfaces()


def get_iface_ipv4_addrs():
	"""
	ordered list of (iface, [ipv4 addrs]) for every interface on the system
	"""
	result = []
	for iface in netifaces.interfaces():
		all_addrs = netifaces.ifaddresses(iface)
		addrs = [ a['addr'] for a in all_addrs.get(netifaces.AF_INET, []) if 'addr' in a ]
		result.append((iface, addrs))
	return result


def strip_mask(ip):
	return ip.split('/')[0]


def is_loopback(ip):
	try:
		return ipaddress.ip_address(strip_mask(ip)).is_loopback
	except ValueError:
		return False


def get_ifindex(iface, sys_net=SYS_CLASS_NET):
	"""
	kernel ifindex of iface, None if the interface is unknown
	"""
	path = os.path.join(sys_net, iface, 'ifindex')
	try:
		with open(path) as f:
			return int(f.read().strip())
	except (OSError, ValueError):
		return None


def write_file(path, content):
	"""
	write content to path, return True if the file was created or changed
	"""
	if os.path.exists(path):
		with open(path) as f:
			if f.read() == content:
				return False

	dirname = os.path.dirname(path)
	if dirname:
		os.makedirs(dirname, exist_ok=True)
	with open(path, 'w') as f:
		f.write(content)
	return True
