"""
uacctd configuration rendering
"""
import os

import util
from config import FlowAccountingConfig
from util import ConfigError


PROG_NAME     = 'flow-accounting'
PID_FILE      = '/var/run/uacctd.pid'
PIPE_FILE     = '/tmp/uacctd.pipe'
INT_MAP_FILE  = '/etc/pmacct/int_map'
NETWORKS_FILE = '/etc/pmacct/networks.lst'

UACCTD_GROUP   = 2
UACCTD_NL_SIZE = 2 * 1024 * 1024
SNAPLEN        = 4 * 1024
#(169 + 1) * sizeof(struct memory_pool_desc) = 4K
MEM_POOLS      = 169

AGGREGATE = 'tag,src_mac,dst_mac,vlan,src_host,dst_host,src_port,dst_port,proto,tos,flows'


def find_agent_ip(tree, iface_addrs):
	"""
	pick an sflow agent address: bgp router-id, ospf router-id, ospfv3
	router-id, then the first non-loopback ipv4 address on the system
	"""
	for asn in tree.list_nodes('protocols bgp'):
		router_id = tree.value(['protocols', 'bgp', asn, 'parameters', 'router-id'])
		if router_id:
			return router_id

	for proto in ('ospf', 'ospfv3'):
		router_id = tree.value('protocols %s parameters router-id' % proto)
		if router_id:
			return router_id

	for _, addrs in iface_addrs:
		for ip in addrs:
			if not util.is_loopback(ip):
				return util.strip_mask(ip)
	return None


def resolve_agent_ip(tree, sflow, iface_addrs):
	"""
	literal or 'auto' agent address, checked against the system's addresses
	"""
	agent_ip = sflow.agent_address
	if agent_ip is None:
		raise ConfigError('agent-address [] not configured on system')
	if agent_ip == 'auto':
		agent_ip = find_agent_ip(tree, iface_addrs)
		if agent_ip is None:
			raise ConfigError('agent-address [auto] could not be resolved')

	system_ips = set(util.strip_mask(ip) for _, addrs in iface_addrs for ip in addrs)
	if agent_ip not in system_ips:
		raise ConfigError('agent-address [%s] not configured on system' % agent_ip)
	return agent_ip


def get_plugins(acct):
	"""
	plugin names, each protocol at most once
	"""
	plugins = []
	if not acct.imt_disabled:
		plugins.append('memory')
	if acct.netflow and acct.netflow.collectors:
		plugins.append('nfprobe')
	if acct.sflow and acct.sflow.collectors:
		plugins.append('sfprobe')
	return plugins


def render_globals(acct, networks_file=NETWORKS_FILE):
	pipe_size   = acct.buffer_size * 1024 * 1024
	buffer_size = pipe_size // 1024

	output  = '!\n! autogenerated by %s\n!\n' % PROG_NAME
	output += 'daemonize: true\n'
	output += 'promisc:   false\n'
	output += 'pidfile:   %s\n' % PID_FILE
	output += 'imt_path:  %s\n' % PIPE_FILE
	output += 'imt_mem_pools_number: %d\n' % MEM_POOLS
	output += 'uacctd_group: %d\n' % UACCTD_GROUP
	output += 'uacctd_nl_size: %d\n' % UACCTD_NL_SIZE
	output += 'snaplen: %d\n' % SNAPLEN
	output += 'refresh_maps: true\n'
	output += 'pre_tag_map: %s\n' % INT_MAP_FILE
	output += 'aggregate: ' + AGGREGATE

	#the networks file is optional, its presence enables AS aggregation
	if networks_file and os.path.exists(networks_file):
		output += ',src_as,dst_as\n'
		output += 'networks_file: %s\n' % networks_file
	else:
		output += '\n'

	output += 'plugin_pipe_size: %d\n' % pipe_size
	output += 'plugin_buffer_size: %d\n' % buffer_size
	return output


def render_netflow(netflow):
	output = ''
	timeouts = netflow.timeout_string()
	for collector in netflow.collectors:
		output += 'nfprobe_receiver: %s\n' % collector.receiver
		if netflow.version is not None:
			output += 'nfprobe_version: %s\n' % netflow.version
		if netflow.source_ip is not None:
			output += 'nfprobe_source_ip: %s\n' % netflow.source_ip
		output += 'nfprobe_engine: %s:0\n' % netflow.engine_id
		if timeouts:
			output += 'nfprobe_timeouts: %s\n' % timeouts
		if netflow.max_flows is not None:
			output += 'nfprobe_maxflows: %s\n' % netflow.max_flows
		if netflow.sampling_rate is not None:
			output += 'sampling_rate: %s\n' % netflow.sampling_rate
	return output


def render_sflow(sflow, agent_ip):
	output = ''
	for collector in sflow.collectors:
		output += 'sfprobe_receiver: %s\n' % collector.receiver
		if agent_ip:
			output += 'sfprobe_agentip: %s\n' % agent_ip
		if sflow.agent_id:
			output += 'sfprobe_agentsubid: %s\n' % sflow.agent_id
		if sflow.sampling_rate is not None:
			output += 'sampling_rate: %s\n' % sflow.sampling_rate
	return output


def render_config(tree, iface_addrs=None, networks_file=NETWORKS_FILE):
	"""
	Build the uacctd configuration text from a ConfigTree.

	iface_addrs is the ordered (iface, [ipv4 addrs]) list used to resolve and
	validate the sflow agent address; it is read from the system when None.
	"""
	acct = FlowAccountingConfig.from_tree(tree)

	netflow = ''
	if acct.netflow:
		netflow = render_netflow(acct.netflow)

	sflow = ''
	if acct.sflow:
		if iface_addrs is None:
			iface_addrs = util.get_iface_ipv4_addrs()
		agent_ip = resolve_agent_ip(tree, acct.sflow, iface_addrs)
		sflow = render_sflow(acct.sflow, agent_ip)

	plugins = get_plugins(acct)
	if not plugins:
		raise ConfigError('no plugins defined, you need to enable either imt, netflow or sflow')

	output  = render_globals(acct, networks_file)
	if acct.syslog_facility is not None:
		output += 'syslog: %s\n' % acct.syslog_facility
	output += 'plugins: %s\n' % ','.join(plugins)
	output += netflow
	output += sflow
	return output


def render_int_map(interfaces, get_ifindex=util.get_ifindex):
	"""
	pre_tag_map lines tagging each interface's traffic with its ifindex
	"""
	output = ''
	for intf in interfaces:
		ifindex = get_ifindex(intf)
		if ifindex is not None:
			output += 'id=%d\tin=%d\n' % (ifindex, ifindex)
		else:
			print('Warning: unknown ifindex for [%s]' % intf)
	return output
