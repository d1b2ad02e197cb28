import argparse
import json
import os
import sys
from enum import Enum

from util import ConfigError


ACCT_PATH         = 'system flow-accounting'
DEFAULT_SNAPSHOT  = '/config/flow-accounting.json'
DEFAULT_CONF_FILE = '/etc/pmacct/uacctd.conf'
DEFAULT_LOG_FILE  = '/var/log/flow-accounting.log'

#default collector ports
NETFLOW_PORT = 2055
SFLOW_PORT   = 6343

#pipe between the core process and plugins, in MiB
DEFAULT_PIPE_SIZE = 10

#netflow timeout kinds mapped to nfprobe_timeouts keywords, in emission order
TIMEOUT_KEYWORDS = (
	('tcp-generic',     'tcp'),
	('tcp-rst',         'tcp.rst'),
	('tcp-fin',         'tcp.fin'),
	('udp',             'udp'),
	('icmp',            'icmp'),
	('flow-generic',    'general'),
	('max-active-life', 'maxlife'),
	('expiry-interval', 'expint'),
)

ACTIONS = ('add-intf', 'del-intf', 'update', 'list-intf')


class HookPolicy(Enum):
	"""
	where in netfilter the NFLOG hook is placed: very early (raw, before
	conntrack) or late (filter, after the firewall)
	"""
	EARLY = 'early'
	LATE  = 'late'


class ConfigTree(object):
	"""
	read-only view of a configuration snapshot, addressed by node path
	e.g. tree.value('system flow-accounting buffer-size')
	"""
	def __init__(self, data=None):
		self._data = data if data is not None else {}

	@staticmethod
	def load(path):
		if not os.path.exists(path):
			raise ConfigError('configuration snapshot not found: %s' % path)
		with open(path) as f:
			try:
				return ConfigTree(json.load(f))
			except ValueError as e:
				raise ConfigError('configuration snapshot is not valid JSON: %s' % e)

	@staticmethod
	def _split(path):
		if isinstance(path, str):
			return path.split()
		return list(path)

	def _node(self, path):
		node = self._data
		for name in self._split(path):
			if not isinstance(node, dict) or name not in node:
				return None
			node = node[name]
			#presence nodes may be stored as null
			if node is None:
				node = {}
		return node

	def exists(self, path):
		return self._node(path) is not None

	def value(self, path):
		node = self._node(path)
		if node is None or isinstance(node, (dict, list)):
			return None
		return node

	def value_int(self, path):
		val = self.value(path)
		if val is None:
			return None
		if isinstance(val, bool) or (isinstance(val, float) and not val.is_integer()):
			raise ConfigError('[%s] is not a whole number: %s' % (path, val))
		try:
			return int(val)
		except (TypeError, ValueError):
			raise ConfigError('[%s] is not a number: %s' % (path, val))

	def values(self, path):
		node = self._node(path)
		if node is None or isinstance(node, dict):
			return []
		if isinstance(node, list):
			return list(node)
		return [node]

	def list_nodes(self, path=''):
		node = self._node(path)
		if not isinstance(node, dict):
			return []
		return list(node.keys())


class CollectorTarget(object):
	"""
	a netflow/sflow receiver
	"""
	def __init__(self, server, port):
		self.server = server
		self.port   = port

	@property
	def name(self):
		return '%s-%d' % (self.server, self.port)

	@property
	def receiver(self):
		return '%s:%d' % (self.server, self.port)

	def __eq__(self, other):
		return isinstance(other, CollectorTarget) and \
			(self.server, self.port) == (other.server, other.port)

	def __hash__(self):
		return hash((self.server, self.port))

	def __repr__(self):
		return 'CollectorTarget(%r, %d)' % (self.server, self.port)


class NetflowSettings(object):

	def __init__(self, version=None, engine_id=0, sampling_rate=None, source_ip=None,
			max_flows=None, timeouts=None, collectors=None):
		self.version       = version
		self.engine_id     = engine_id
		self.sampling_rate = sampling_rate
		self.source_ip     = source_ip
		self.max_flows     = max_flows
		self.timeouts      = timeouts or {}
		self.collectors    = collectors or []

	def timeout_string(self):
		"""
		nfprobe_timeouts value, '' when no timeout is set
		"""
		parts = []
		for kind, keyword in TIMEOUT_KEYWORDS:
			value = self.timeouts.get(kind)
			if value and keyword:
				parts.append('%s=%s' % (keyword, value))
		return ':'.join(parts)

	@staticmethod
	def from_tree(tree):
		path = ACCT_PATH + ' netflow'
		if not tree.exists(path):
			return None

		engine_id = tree.value(path + ' engine-id')
		timeouts = {}
		for kind, _ in TIMEOUT_KEYWORDS:
			value = tree.value('%s timeout %s' % (path, kind))
			if value is not None:
				timeouts[kind] = value

		return NetflowSettings(
			version       = tree.value(path + ' version'),
			engine_id     = engine_id if engine_id is not None else 0,
			sampling_rate = tree.value(path + ' sampling-rate'),
			source_ip     = tree.value(path + ' source-ip'),
			max_flows     = tree.value(path + ' max-flows'),
			timeouts      = timeouts,
			collectors    = get_collectors(tree, 'netflow'))


class SflowSettings(object):

	def __init__(self, agent_id=None, agent_address=None, sampling_rate=None, collectors=None):
		self.agent_id      = agent_id
		#literal ipv4 address or 'auto'
		self.agent_address = agent_address
		self.sampling_rate = sampling_rate
		self.collectors    = collectors or []

	@staticmethod
	def from_tree(tree):
		path = ACCT_PATH + ' sflow'
		if not tree.exists(path):
			return None

		return SflowSettings(
			agent_id      = tree.value(path + ' agentid'),
			agent_address = tree.value(path + ' agent-address'),
			sampling_rate = tree.value(path + ' sampling-rate'),
			collectors    = get_collectors(tree, 'sflow'))


class FlowAccountingConfig(object):
	"""
	snapshot of 'system flow-accounting'
	"""
	def __init__(self, buffer_size=DEFAULT_PIPE_SIZE, syslog_facility=None, imt_disabled=False,
			interfaces=None, netflow=None, sflow=None):
		self.buffer_size     = buffer_size
		self.syslog_facility = syslog_facility
		self.imt_disabled    = imt_disabled
		self.interfaces      = interfaces or []
		self.netflow         = netflow
		self.sflow           = sflow

	@staticmethod
	def from_tree(tree):
		buffer_size = tree.value_int(ACCT_PATH + ' buffer-size')
		return FlowAccountingConfig(
			buffer_size     = buffer_size if buffer_size is not None else DEFAULT_PIPE_SIZE,
			syslog_facility = tree.value(ACCT_PATH + ' syslog-facility'),
			imt_disabled    = tree.exists(ACCT_PATH + ' disable-imt'),
			interfaces      = tree.values(ACCT_PATH + ' interface'),
			netflow         = NetflowSettings.from_tree(tree),
			sflow           = SflowSettings.from_tree(tree))

	def __str__(self):
		return \
			"    %-30s:%s\n    %-30s:%s\n    %-30s:%s\n    %-30s:%s\n    %-30s:%s\n    %-30s:%s" % \
			('BUFFER SIZE (MiB)', self.buffer_size, 'SYSLOG FACILITY', self.syslog_facility,
				'IMT', 'disabled' if self.imt_disabled else 'enabled',
				'INTERFACES', ' '.join(self.interfaces),
				'NETFLOW', ' '.join(c.receiver for c in self.netflow.collectors) if self.netflow else '-',
				'SFLOW', ' '.join(c.receiver for c in self.sflow.collectors) if self.sflow else '-')


def get_collectors(tree, proto):
	"""
	one CollectorTarget per configured server of proto ('netflow' or 'sflow')
	"""
	default_port = NETFLOW_PORT if proto == 'netflow' else SFLOW_PORT
	path = '%s %s server' % (ACCT_PATH, proto)

	collectors = []
	for server in tree.list_nodes(path):
		port = tree.value_int(path.split() + [server, 'port'])
		collectors.append(CollectorTarget(server, port if port is not None else default_port))
	return collectors


def get_parser():
	parser = argparse.ArgumentParser(description='configure flow-accounting (pmacct uacctd)')
	parser.add_argument('--action', action='store', dest='action', required=False, type=str,
		help='one of: ' + ', '.join(ACTIONS))
	parser.add_argument('--intf', action='store', dest='intf', required=False, type=str,
		help='interface name for add-intf/del-intf')
	parser.add_argument('--config', action='store', dest='snapshot', required=False, type=str,
		default=DEFAULT_SNAPSHOT, help='JSON snapshot of the router configuration')
	parser.add_argument('--conf-file', action='store', dest='conf_file', required=False, type=str,
		default=DEFAULT_CONF_FILE, help='uacctd configuration file to generate')
	parser.add_argument('--hook', action='store', dest='hook', required=False, type=str,
		default=HookPolicy.EARLY.value, choices=[ p.value for p in HookPolicy ],
		help='NFLOG hook placement (early: raw PREROUTING, late: filter post-firewall)')
	parser.add_argument('--log-file', action='store', dest='log_file', required=False, type=str,
		default=DEFAULT_LOG_FILE, help='activity log')
	return parser


def get_config(args):
	"""
	Parse command line arguments, validate them
	"""
	parser = get_parser()
	p_res  = parser.parse_args(args)

	issues = ''
	if not p_res.action:
		issues += '    - undefined action.\n'
	elif p_res.action not in ACTIONS:
		issues += '    - invalid action: %s\n' % p_res.action
	elif p_res.action in ('add-intf', 'del-intf') and not p_res.intf:
		issues += '    - must include interface.\n'

	if issues:
		print('[-] issues:\n' + issues, file=sys.stderr)
		parser.print_usage(sys.stderr)
		sys.exit(1)

	p_res.hook = HookPolicy(p_res.hook)
	return p_res
